"""Device driver interface.

Every driver subclasses :class:`Device`. The reconciler only relies on the
identity attributes, the ``connect``/``disconnect``/``handle`` coroutines
and the two event streams (entity updates and log messages).
"""

import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Union

from pydantic import ValidationError

from ..models import DeviceConfig, Entity, slugify

logger = logging.getLogger(__name__)

EntityListener = Callable[["Device", Entity], Awaitable[None]]
MessageListener = Callable[["Device", str, str], Awaitable[None]]
Detach = Callable[[], None]


class Device(ABC):
    """Base class for device drivers."""

    manufacturer: str = "Generic"
    model: str = "Device"
    version: str = "1.0"

    def __init__(self, config: DeviceConfig):
        """Initialize the driver.

        Args:
            config: Fleet entry this device was created from
        """
        self.config = config
        self.name: str = config.get("name") or type(self).__name__
        self.id: str = str(config.get("id") or slugify(self.name))
        self._entity_listeners: list[EntityListener] = []
        self._message_listeners: list[MessageListener] = []

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r} name={self.name!r}>"

    @abstractmethod
    async def connect(self) -> Optional[str]:
        """Connect to the physical/virtual counterpart.

        Returns:
            None on success, or a failure reason string
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the connection."""

    @abstractmethod
    async def handle(self, key: str, state: str, value: str) -> None:
        """Handle an inbound command.

        Args:
            key: Command key from the fleet config or entity key
            state: Last segment of the topic the command arrived on
            value: Raw payload
        """

    def on_entity_update(self, listener: EntityListener) -> Detach:
        """Register an entity-update listener.

        Returns:
            Callable that removes the listener again
        """
        self._entity_listeners.append(listener)
        return lambda: self._remove(self._entity_listeners, listener)

    def on_message(self, listener: MessageListener) -> Detach:
        """Register a log-message listener.

        Returns:
            Callable that removes the listener again
        """
        self._message_listeners.append(listener)
        return lambda: self._remove(self._message_listeners, listener)

    def detach_all(self) -> None:
        """Drop every registered listener."""
        self._entity_listeners.clear()
        self._message_listeners.clear()

    @staticmethod
    def _remove(listeners: list, listener) -> None:
        if listener in listeners:
            listeners.remove(listener)

    async def publish_entity(self, entity: Union[Entity, dict]) -> None:
        """Emit an entity update to all listeners.

        A dict that does not describe a valid entity is logged and dropped.
        """
        if isinstance(entity, dict):
            try:
                entity = Entity(**entity)
            except ValidationError as e:
                logger.error(f"Dropping invalid entity from {self.id}: {e}")
                return

        for listener in list(self._entity_listeners):
            try:
                await listener(self, entity)
            except Exception as e:
                logger.error(
                    f"Entity listener failed for {self.id}/{entity.key}: {e}",
                    exc_info=True,
                )

    async def message(self, icon: str, text: str) -> None:
        """Emit a log message to all listeners."""
        for listener in list(self._message_listeners):
            try:
                await listener(self, icon, text)
            except Exception as e:
                logger.error(f"Message listener failed for {self.id}: {e}")
