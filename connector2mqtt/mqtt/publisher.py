"""Entity state publisher for MQTT."""

import logging
from typing import Iterable, Optional

from ..config import MQTTConfig
from ..models import Entity, HOMEASSISTANT_SUPPORT
from .client import MQTTClient
from .discovery import DiscoveryGenerator

logger = logging.getLogger(__name__)

DEVICE_NAMESPACE = "device"


class EntityPublisher:
    """Publisher for device entities.

    The entity descriptor is published once per reconciliation epoch;
    sub-state values are republished on every update.
    """

    def __init__(
        self,
        mqtt_client: MQTTClient,
        config: MQTTConfig,
        discovery: Optional[DiscoveryGenerator] = None,
    ):
        """Initialize the entity publisher.

        Args:
            mqtt_client: Connected MQTT client
            config: MQTT configuration
            discovery: Discovery generator used when Home Assistant
                support is enabled
        """
        self.client = mqtt_client
        self.config = config
        self.discovery = discovery
        self._published: set[str] = set()

    def entity_topic(self, device, entity: Entity) -> str:
        """Canonical topic of an entity.

        Returns:
            ``<base>/device/<device id>/<entity key>``
        """
        return "/".join([self.config.base_topic, DEVICE_NAMESPACE, device.id, entity.key])

    def is_published(self, topic: str) -> bool:
        """Check if the descriptor for a topic was published this epoch."""
        return topic in self._published

    def reset(self) -> None:
        """Start a new epoch: every descriptor will be published again."""
        self._published.clear()

    async def publish(
        self,
        device,
        entity: Entity,
        support: Iterable[str] = (),
    ) -> str:
        """Publish an entity update.

        Args:
            device: Device owning the entity
            entity: Updated entity
            support: Enabled feature flags of the current fleet

        Returns:
            Canonical entity topic
        """
        topic = self.entity_topic(device, entity)

        if topic not in self._published:
            self._published.add(topic)
            await self.client.publish_json(topic, entity.descriptor(), retain=True)
            logger.info(f"[{device.name}] published entity '{entity.name}' to topic '{topic}'")

        for key, value in entity.states.items():
            await self.client.publish(f"{topic}/{key}", _state_str(value), retain=True)

        if (
            self.discovery is not None
            and HOMEASSISTANT_SUPPORT in support
            and not self.discovery.is_announced(topic)
        ):
            await self.discovery.announce(device, entity, topic)

        return topic


def _state_str(value) -> str:
    """String form of a state value as sent on the wire."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)
