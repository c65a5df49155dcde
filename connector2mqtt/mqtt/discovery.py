"""Home Assistant MQTT Discovery configuration."""

import logging
from typing import Any

from ..config import MQTTConfig
from ..models import Entity
from .client import MQTTClient

logger = logging.getLogger(__name__)


class DiscoveryGenerator:
    """Generator for Home Assistant MQTT Discovery configs.

    Remembers which entity topics have been announced. Home Assistant
    forgets non-retained state on restart, so the cache is cleared when
    it announces itself online again (see :meth:`reset`).
    """

    def __init__(self, mqtt_client: MQTTClient, config: MQTTConfig):
        """Initialize the discovery generator.

        Args:
            mqtt_client: Connected MQTT client
            config: MQTT configuration
        """
        self.client = mqtt_client
        self.config = config
        self._announced: set[str] = set()

    def is_announced(self, topic: str) -> bool:
        """Check if discovery was already published for an entity topic."""
        return topic in self._announced

    def reset(self) -> None:
        """Forget all announced topics."""
        logger.info(f"Clearing discovery cache ({len(self._announced)} entities)")
        self._announced.clear()

    def _discovery_topic(self, component: str, unique_id: str) -> str:
        """Build a discovery topic.

        Args:
            component: HA component type (sensor, switch, etc.)
            unique_id: Unique entity identifier

        Returns:
            Discovery topic string
        """
        return f"{self.config.discovery_prefix}/{component}/{unique_id}/config"

    def build_config(self, device, entity: Entity, topic: str) -> dict[str, Any]:
        """Build the discovery payload for an entity.

        Args:
            device: Device owning the entity
            entity: Entity to describe
            topic: Canonical entity topic

        Returns:
            Discovery config dictionary, without unset fields
        """
        unique_id = f"{device.id}_{entity.key}"
        component = entity.type or "sensor"

        config: dict[str, Any] = {
            "name": f"{device.name} {entity.name}",
            "unique_id": unique_id,
            "device": {
                "name": device.name,
                "model": device.model,
                "manufacturer": device.manufacturer,
                "sw_version": device.version,
                "identifiers": [device.id],
            },
        }

        for state in entity.states:
            config[f"{state}_topic"] = f"{topic}/{state}"

        for command in entity.commands:
            config[f"{command}_topic"] = f"{topic}/{command}"

        if component == "sensor":
            config["device_class"] = entity.device_class
            config["unit_of_measurement"] = entity.unit

        elif component == "select":
            if isinstance(entity.options, dict) and entity.options:
                config["options"] = [str(label) for label in entity.options.values()]
                config["command_template"] = "".join(
                    f'{{% if value == "{label}" %}} {value} {{% endif %}}'
                    for value, label in entity.options.items()
                )

        elif component == "climate":
            config["min_temp"] = entity.min_temp
            config["max_temp"] = entity.max_temp
            config["temp_step"] = entity.temp_step
            config["modes"] = entity.modes
            config["fan_modes"] = entity.fan_modes
            config["payload_available"] = "online"
            config["payload_not_available"] = "offline"
            config["availability_topic"] = f"{topic}/state"

        elif component == "number":
            config["min"] = entity.min
            config["max"] = entity.max
            config["step"] = entity.step

        elif component == "light":
            config["brightness_scale"] = entity.brightness_scale
            config["schema"] = "json"
            config["brightness"] = entity.brightness

        return {k: v for k, v in config.items() if v is not None}

    async def announce(self, device, entity: Entity, topic: str) -> str:
        """Publish the discovery config for an entity (retained).

        The topic is marked as announced before publishing, so a second
        update arriving while the publish is in flight does not announce
        the entity twice.

        Returns:
            Discovery topic the config was published to
        """
        self._announced.add(topic)

        config = self.build_config(device, entity, topic)
        discovery_topic = self._discovery_topic(entity.type or "sensor", config["unique_id"])

        await self.client.publish_json(discovery_topic, config, retain=True)
        logger.info(f"[{device.name}] published discovery for '{entity.name}' to '{discovery_topic}'")
        return discovery_topic
