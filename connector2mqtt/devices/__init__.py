"""Device drivers and the class registry."""

from .base import Device
from .registry import DeviceRegistry, default_registry

__all__ = ["Device", "DeviceRegistry", "default_registry"]
