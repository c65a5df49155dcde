"""Data models for fleet configuration and device entities."""

from .entity import Entity
from .fleet import (
    DeviceConfig,
    FleetConfig,
    FleetConfigError,
    FleetConfigParseError,
    FleetConfigValidationError,
    HOMEASSISTANT_SUPPORT,
    slugify,
)

__all__ = [
    "Entity",
    "DeviceConfig",
    "FleetConfig",
    "FleetConfigError",
    "FleetConfigParseError",
    "FleetConfigValidationError",
    "HOMEASSISTANT_SUPPORT",
    "slugify",
]
