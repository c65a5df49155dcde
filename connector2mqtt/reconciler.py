"""Fleet reconciliation.

Turns a fleet configuration into a set of connected devices. Every new
configuration replaces the whole fleet: current devices are disconnected,
the routing table and descriptor dedup set are cleared, and the new
devices are created and connected one after another, in config order.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from pydantic import ValidationError

from .devices import Device, DeviceRegistry
from .models import DeviceConfig, Entity, FleetConfig
from .mqtt.client import MQTTClient
from .mqtt.publisher import EntityPublisher
from .mqtt.router import TopicRouter
from .utils.logging import log_device_message

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation."""

    connected: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)


class FleetReconciler:
    """Owns the live device table.

    Reconciliations are serialized: a configuration arriving while another
    one is being applied waits for it to finish.
    """

    def __init__(
        self,
        mqtt_client: MQTTClient,
        registry: DeviceRegistry,
        router: TopicRouter,
        publisher: EntityPublisher,
    ):
        self.client = mqtt_client
        self.registry = registry
        self.router = router
        self.publisher = publisher
        self.devices: dict[str, Device] = {}
        self.support: list[str] = []
        self.status_subscribed = False
        self._detach: dict[Device, list[Callable[[], None]]] = {}
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        """Check if a reconciliation is in flight."""
        return self._lock.locked()

    async def reconcile(self, fleet: FleetConfig) -> ReconcileResult:
        """Replace the current fleet with the one described by ``fleet``.

        Per-device problems (unknown class, invalid entry, connect
        failure) are logged and skipped; they never abort the others.
        """
        async with self._lock:
            return await self._reconcile(fleet)

    async def _reconcile(self, fleet: FleetConfig) -> ReconcileResult:
        result = ReconcileResult()

        if fleet.homeassistant and not self.status_subscribed:
            await self.client.subscribe(self.client.config.status_topic)
            self.status_subscribed = True

        await self._teardown()

        self.support = list(fleet.support)

        for index, raw in enumerate(fleet.devices):
            try:
                config = DeviceConfig.model_validate(raw)
            except ValidationError as e:
                log_device_message("⚠️", f"Invalid device entry #{index} in config: {e}", level=logging.WARNING)
                result.skipped.append(str(index))
                continue

            factory = self.registry.lookup(config.device_class)
            if factory is None:
                log_device_message(
                    "⚠️", f"Unknown device class in config: {config.device_class}", level=logging.WARNING
                )
                result.skipped.append(config.device_class)
                continue

            try:
                device = factory(config)
            except Exception as e:
                log_device_message(
                    "⚠️", f"Cannot create {config.device_class} device: {e}", level=logging.WARNING
                )
                result.skipped.append(config.device_class)
                continue

            if device.id in self.devices:
                log_device_message(
                    "⚠️", f"Duplicate device id in config: {device.id}", device, level=logging.WARNING
                )
                result.skipped.append(device.id)
                continue

            reason = await self._connect(device)
            connects = f"connects by {device.manufacturer} {device.model}:"

            if reason is not None:
                log_device_message("⚡", f"{connects} FAIL {reason}", device, level=logging.WARNING)
                self._release(device)
                device.detach_all()
                await self._drop_routes(device)
                result.failed[device.id] = reason
                continue

            log_device_message("⚡", f"{connects} SUCCESS", device)
            self.devices[device.id] = device

            for key, topic in config.subscribe.items():
                try:
                    await self.router.subscribe(topic, device.id, self._command_handler(device, key))
                except Exception as e:
                    log_device_message(
                        "⚠️", f"cannot subscribe {key} to '{topic}': {e}", device, level=logging.WARNING
                    )

            result.connected.append(device.id)

        logger.info(
            f"Fleet reconciled: {len(result.connected)} connected, "
            f"{len(result.failed)} failed, {len(result.skipped)} skipped"
        )
        return result

    async def _connect(self, device: Device) -> Optional[str]:
        """Attach listeners and connect a device.

        Returns:
            None on success, otherwise the failure reason
        """
        self._detach[device] = [
            device.on_entity_update(self._on_entity_update),
            device.on_message(self._on_message),
        ]

        try:
            result = await device.connect()
        except Exception as e:
            logger.debug(f"Connect raised for {device!r}", exc_info=True)
            return str(e) or type(e).__name__

        if isinstance(result, str):
            return result
        return None

    def _release(self, device: Device) -> None:
        for detach in self._detach.pop(device, []):
            detach()

    async def _drop_routes(self, device: Device) -> None:
        """Remove routes a failed device registered while connecting."""
        topics = self.router.remove_device(device.id)
        if topics:
            await self.client.unsubscribe(topics)

    def _command_handler(self, device: Device, key: str):
        async def handler(state: str, value: str) -> None:
            await device.handle(key, state, value)

        return handler

    async def _on_entity_update(self, device: Device, entity: Entity) -> None:
        topic = await self.publisher.publish(device, entity, self.support)

        for command in entity.commands:
            await self.router.subscribe(
                f"{topic}/{command}",
                device.id,
                self._command_handler(device, entity.key),
            )

    async def _on_message(self, device: Device, icon: str, text: str) -> None:
        log_device_message(icon, text, device)

    async def _teardown(self) -> None:
        """Disconnect all devices and clear routing and dedup state."""
        devices = list(self.devices.values())
        self.devices = {}

        for device in devices:
            try:
                await device.disconnect()
            except Exception as e:
                log_device_message("⚠️", f"disconnect failed: {e}", device, level=logging.WARNING)
            finally:
                self._release(device)
                device.detach_all()

        topics = self.router.reset_all()
        if topics:
            try:
                await self.client.unsubscribe(topics)
            except Exception as e:
                logger.error(f"Failed to unsubscribe from {len(topics)} topics: {e}")

        self.publisher.reset()

    async def shutdown(self) -> None:
        """Disconnect the whole fleet."""
        async with self._lock:
            logger.info(f"Shutting down {len(self.devices)} devices")
            await self._teardown()
