"""In-memory device driven entirely by its fleet entry.

Example fleet entry::

    {
        "class": "Virtual",
        "id": "lamp",
        "name": "Lamp",
        "entities": [
            {"key": "power", "name": "Power", "type": "switch",
             "states": {"state": "OFF"}, "commands": ["set"]}
        ]
    }

A command arriving on ``.../<entity>/set`` stores the payload as the
entity's ``state``; a command arriving on ``.../<entity>/<sub>`` where
``<sub>`` is an existing sub-state stores it there. The entity is then
republished.
"""

import logging
from typing import Optional

from ..models import DeviceConfig, Entity
from .base import Device

logger = logging.getLogger(__name__)


class VirtualDevice(Device):
    """Device simulated in memory."""

    manufacturer = "Connector2MQTT"
    model = "Virtual"

    def __init__(self, config: DeviceConfig):
        super().__init__(config)
        self.manufacturer = config.get("manufacturer", self.manufacturer)
        self.model = config.get("model", self.model)
        self.version = str(config.get("version", self.version))
        self.entities: dict[str, Entity] = {}
        self.connected = False
        self.handled: list[tuple[str, str, str]] = []

    async def connect(self) -> Optional[str]:
        failure = self.config.get("fail")
        if failure:
            return str(failure)

        try:
            for raw in self.config.get("entities", []):
                entity = Entity(**raw)
                self.entities[entity.key] = entity
        except (TypeError, ValueError) as e:
            return f"invalid entity definition: {e}"

        self.connected = True
        await self.message("✨", f"virtual device ready with {len(self.entities)} entities")

        for entity in self.entities.values():
            await self.publish_entity(entity)
        return None

    async def disconnect(self) -> None:
        self.connected = False
        await self.message("🔌", "virtual device disconnected")

    async def handle(self, key: str, state: str, value: str) -> None:
        self.handled.append((key, state, value))

        entity = self.entities.get(key)
        if entity is None:
            await self.message("⚠️", f"unknown entity: {key}")
            return

        if state in entity.states:
            target = state
        elif state == "set" or state in entity.commands:
            target = "state"
        else:
            await self.message("⚠️", f"unsupported command '{state}' for {key}")
            return

        entity.states[target] = value
        logger.debug(f"{self.id}/{key}/{target} <- {value}")
        await self.publish_entity(entity)
