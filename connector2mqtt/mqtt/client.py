"""Async MQTT client wrapper."""

import logging
import json
from typing import Optional, Any, Callable, Awaitable, Union

import aiomqtt

from ..config import MQTTConfig

logger = logging.getLogger(__name__)

# Type alias for message callback
MessageCallback = Callable[[str, bytes], Awaitable[None]]


class MQTTClient:
    """Async MQTT client for the connector.

    Wraps aiomqtt with connection management and helper methods
    for JSON publishing and bulk (un)subscription.
    """

    def __init__(self, config: MQTTConfig):
        """Initialize the MQTT client.

        Args:
            config: MQTT configuration
        """
        self.config = config
        self._client: Optional[aiomqtt.Client] = None
        self._connected = False

    @property
    def connected(self) -> bool:
        """Check if connected to MQTT broker."""
        return self._connected

    async def connect(self) -> None:
        """Connect to the MQTT broker.

        Raises:
            MqttError: If connection fails
        """
        logger.info(f"Connecting to MQTT broker at {self.config.host}:{self.config.port}")

        try:
            self._client = aiomqtt.Client(
                hostname=self.config.host,
                port=self.config.port,
                username=self.config.username,
                password=self.config.password,
                identifier=self.config.client_id,
            )
            await self._client.__aenter__()
            self._connected = True
            logger.info("Connected to MQTT broker")

        except Exception as e:
            logger.error(
                f"Error connecting mqtt at {self.config.host}:{self.config.port}: {e}"
            )
            self._client = None
            raise

    async def disconnect(self) -> None:
        """Disconnect from the MQTT broker."""
        if self._client:
            try:
                await self._client.__aexit__(None, None, None)
            except Exception as e:
                logger.debug(f"Error during MQTT disconnect: {e}")

            self._client = None
            self._connected = False
            logger.info("Disconnected from MQTT broker")

    def _ensure_connected(self) -> aiomqtt.Client:
        if not self._client or not self._connected:
            raise ConnectionError("Not connected to MQTT broker")
        return self._client

    async def publish(
        self,
        topic: str,
        payload: Any,
        retain: bool = False,
        qos: Optional[int] = None,
    ) -> None:
        """Publish a message to a topic.

        Args:
            topic: MQTT topic
            payload: Message payload (will be JSON-encoded if dict/list)
            retain: Whether to retain the message
            qos: QoS level (default from config)
        """
        client = self._ensure_connected()

        if qos is None:
            qos = self.config.qos

        if isinstance(payload, (dict, list)):
            payload_out = json.dumps(payload)
        elif isinstance(payload, bytes):
            payload_out = payload
        elif payload is None:
            payload_out = ""
        else:
            payload_out = str(payload)

        await client.publish(
            topic,
            payload=payload_out,
            qos=qos,
            retain=retain,
        )
        logger.debug(f"Published to {topic}: {payload_out[:100]!r}")

    async def publish_json(
        self,
        topic: str,
        data: dict,
        retain: bool = False,
    ) -> None:
        """Publish a JSON message.

        Args:
            topic: MQTT topic
            data: Dictionary to publish as JSON
            retain: Whether to retain the message
        """
        await self.publish(topic, data, retain=retain)

    async def subscribe(self, topic: str) -> None:
        """Subscribe to a topic.

        Args:
            topic: MQTT topic pattern
        """
        client = self._ensure_connected()
        await client.subscribe(topic, qos=self.config.qos)
        logger.debug(f"Subscribed to {topic}")

    async def unsubscribe(self, topics: Union[str, list[str]]) -> None:
        """Unsubscribe from one or more topics.

        Args:
            topics: A topic or a list of topics
        """
        if isinstance(topics, str):
            topics = [topics]
        if not topics:
            return

        client = self._ensure_connected()
        await client.unsubscribe(list(topics))
        logger.debug(f"Unsubscribed from {len(topics)} topics")

    async def message_loop(self, callback: MessageCallback) -> None:
        """Run a message processing loop.

        Continuously receives messages and calls the callback for each.
        Only returns when disconnected or cancelled; broker errors
        (``aiomqtt.MqttError``) propagate to the caller.

        Args:
            callback: Async function called with (topic, payload) for each message
        """
        client = self._ensure_connected()

        logger.debug("Starting MQTT message loop")

        async for message in client.messages:
            topic = str(message.topic)

            if isinstance(message.payload, bytes):
                payload = message.payload
            elif message.payload is None:
                payload = b""
            else:
                payload = str(message.payload).encode()

            logger.debug(f"Received message on {topic}: {payload[:100]}")

            try:
                await callback(topic, payload)
            except Exception as e:
                logger.error(f"Error processing message on {topic}: {e}", exc_info=True)
