"""Main application orchestrator for Connector2MQTT."""

import asyncio
import logging
import signal
from typing import Optional, Union

import aiomqtt

from .config import AppConfig, get_config
from .devices import DeviceRegistry, default_registry
from .models import FleetConfig, FleetConfigError
from .mqtt.client import MQTTClient
from .mqtt.discovery import DiscoveryGenerator
from .mqtt.publisher import EntityPublisher
from .mqtt.router import TopicRouter
from .reconciler import FleetReconciler
from .utils.logging import setup_logging

logger = logging.getLogger(__name__)


class Connector2MQTT:
    """Main application class.

    Wires the MQTT client to the topic router and the fleet reconciler,
    and keeps the broker session alive.
    """

    def __init__(
        self,
        config: Union[AppConfig, str, None] = None,
        registry: Optional[DeviceRegistry] = None,
        mqtt_client: Optional[MQTTClient] = None,
    ):
        """Initialize the application.

        Args:
            config: AppConfig instance, path to YAML config file, or None for env/defaults
            registry: Device class registry (built-in drivers if None)
            mqtt_client: MQTT client to use (created from config if None)
        """
        if isinstance(config, AppConfig):
            self.config = config
        elif isinstance(config, str):
            self.config = get_config(config)
        else:
            self.config = get_config()

        self.running = False
        self._shutdown_event = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()

        if registry is None:
            registry = default_registry(self.config.fleet.disabled_classes)
        self.registry = registry

        self.mqtt = mqtt_client or MQTTClient(self.config.mqtt)
        self.discovery = DiscoveryGenerator(self.mqtt, self.config.mqtt)
        self.publisher = EntityPublisher(self.mqtt, self.config.mqtt, self.discovery)
        self.router = TopicRouter(self.mqtt)
        self.reconciler = FleetReconciler(
            self.mqtt,
            self.registry,
            self.router,
            self.publisher,
        )

    async def start(self) -> None:
        """Start the application.

        Connects to the broker and processes messages until shutdown.
        Broker errors are logged and followed by a reconnect.
        """
        setup_logging(
            level=self.config.logging.level,
            log_file=self.config.logging.file,
            format_string=self.config.logging.format,
        )

        logger.info("Starting Connector2MQTT")
        logger.info(f"Device classes: {', '.join(self.registry.classes) or 'none'}")
        self.running = True

        self._setup_signal_handlers()
        asyncio.get_running_loop().set_exception_handler(self._handle_loop_exception)

        try:
            while self.running and not self._shutdown_event.is_set():
                try:
                    await self.mqtt.connect()
                    await self._on_connect()
                    await self._run_until_shutdown(self.mqtt.message_loop(self.handle_message))
                except aiomqtt.MqttError as e:
                    logger.error(f"MQTT error: {e}")
                    await self.mqtt.disconnect()
                    await self._wait_reconnect()
        except asyncio.CancelledError:
            logger.info("Application cancelled")
        finally:
            await self.stop()

    async def _run_until_shutdown(self, coro) -> None:
        """Run a coroutine until it ends or shutdown is requested."""
        main = asyncio.create_task(coro)
        shutdown = asyncio.create_task(self._shutdown_event.wait())
        try:
            done, _ = await asyncio.wait(
                {main, shutdown},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if main in done:
                main.result()
        finally:
            for task in (main, shutdown):
                task.cancel()

    async def _wait_reconnect(self) -> None:
        interval = self.config.mqtt.reconnect_interval
        logger.info(f"Reconnecting to MQTT broker in {interval}s")
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass

    async def _on_connect(self) -> None:
        """Publish the local fleet config and (re)subscribe topics."""
        config_file = self.config.fleet.config_file
        if config_file is not None and config_file.exists():
            logger.info(f"Local config found ({config_file}). Publishing...")
            await self.mqtt.publish(
                self.config.mqtt.config_topic,
                config_file.read_bytes(),
                retain=True,
            )

        await self.mqtt.subscribe(self.config.mqtt.config_topic)

        if self.reconciler.status_subscribed:
            await self.mqtt.subscribe(self.config.mqtt.status_topic)

        for topic in self.router.topics:
            await self.mqtt.subscribe(topic)

    async def handle_message(self, topic: str, payload: bytes) -> None:
        """Route an incoming MQTT message by its namespace.

        Args:
            topic: MQTT topic
            payload: Message payload
        """
        text = payload.decode("utf-8", errors="replace")

        if topic == self.config.mqtt.config_topic:
            self._apply_config(payload)

        elif topic == self.config.mqtt.status_topic:
            if text == "online":
                logger.info("Home Assistant came online")
                self.discovery.reset()

        else:
            # Device command topics; unknown topics have no handlers
            await self.router.dispatch(topic, topic.rsplit("/", 1)[-1], text)

    def _apply_config(self, payload: bytes) -> Optional[asyncio.Task]:
        """Parse a fleet config and schedule its reconciliation.

        Parsing happens before anything is torn down, so an invalid
        payload leaves the running fleet untouched.
        """
        try:
            fleet = FleetConfig.from_payload(payload)
        except FleetConfigError as e:
            logger.error(f"Ignoring fleet config: {e}")
            return None

        logger.info(f"New config discovered ({len(fleet.devices)} devices). Processing...")
        if self.reconciler.busy:
            logger.info("Reconciliation in progress, new config queued")

        task = asyncio.create_task(self.reconciler.reconcile(fleet))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Fleet reconciliation failed", exc_info=task.exception())

    def _handle_loop_exception(self, loop, context: dict) -> None:
        exception = context.get("exception")
        logger.error(
            f"Unhandled error: {context.get('message', 'unknown')}",
            exc_info=exception,
        )

    async def stop(self) -> None:
        """Stop the application gracefully."""
        logger.info("Stopping Connector2MQTT")
        self.running = False
        self._shutdown_event.set()

        for task in list(self._tasks):
            task.cancel()

        try:
            await self.reconciler.shutdown()
        except Exception as e:
            logger.error(f"Error shutting down fleet: {e}")

        try:
            await self.mqtt.disconnect()
        except Exception as e:
            logger.error(f"Error disconnecting MQTT: {e}")

        logger.info("Connector2MQTT stopped")

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(sig):
            logger.info(f"Received signal {sig.name}, initiating shutdown")
            self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))


async def run_app(
    config: Union[AppConfig, str, None] = None,
    registry: Optional[DeviceRegistry] = None,
) -> None:
    """Run the application.

    Args:
        config: AppConfig instance, path to config file, or None for env/defaults
        registry: Optional device class registry
    """
    app = Connector2MQTT(config, registry=registry)
    await app.start()
