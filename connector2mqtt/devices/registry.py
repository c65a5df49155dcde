"""Device class registry.

Maps the ``class`` field of a fleet entry to a driver factory. The registry
is filled once at startup and only read afterwards.
"""

import logging
from typing import Callable, Iterable, Optional

from ..models import DeviceConfig
from .base import Device

logger = logging.getLogger(__name__)

DeviceFactory = Callable[[DeviceConfig], Device]


class DeviceRegistry:
    """Static class id -> driver factory mapping."""

    def __init__(self):
        self._factories: dict[str, DeviceFactory] = {}

    def register(self, class_id: str, factory: DeviceFactory) -> None:
        """Register a driver factory.

        Raises:
            ValueError: If the class id is already registered
        """
        if class_id in self._factories:
            raise ValueError(f"Device class already registered: {class_id}")
        self._factories[class_id] = factory
        logger.info(f"Device class found: {class_id}")

    def lookup(self, class_id: str) -> Optional[DeviceFactory]:
        """Get the factory for a class id, or None if unknown."""
        return self._factories.get(class_id)

    def __contains__(self, class_id: str) -> bool:
        return class_id in self._factories

    @property
    def classes(self) -> list[str]:
        """Registered class ids, sorted."""
        return sorted(self._factories)


def default_registry(disabled: Iterable[str] = ()) -> DeviceRegistry:
    """Build the registry of built-in drivers.

    Args:
        disabled: Class ids to leave out
    """
    from .serial_line import SerialLineDevice
    from .virtual import VirtualDevice

    builtin = {
        "Virtual": VirtualDevice,
        "SerialLine": SerialLineDevice,
    }

    skip = set(disabled)
    registry = DeviceRegistry()
    for class_id, factory in builtin.items():
        if class_id in skip:
            logger.info(f"Device class disabled: {class_id}")
            continue
        registry.register(class_id, factory)
    return registry
