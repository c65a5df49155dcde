"""Fleet configuration models.

The fleet configuration arrives as an opaque JSON payload on the config
topic. Only the top-level structure is validated here; individual device
entries are validated one by one during reconciliation so that a single
bad entry never rejects the whole fleet.
"""

import json
import re
from typing import Any, Union
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

HOMEASSISTANT_SUPPORT = "homeassistant"


class FleetConfigError(ValueError):
    """Base error for an unusable fleet configuration payload."""


class FleetConfigParseError(FleetConfigError):
    """Payload is not valid JSON, or not a JSON object."""


class FleetConfigValidationError(FleetConfigError):
    """Payload is JSON but lacks the required structure."""


def slugify(text: str) -> str:
    """Convert text to a slug suitable for topic segments.

    E.g., 'Living Room Lamp' -> 'living_room_lamp'
    """
    text = text.lower()
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[-\s]+", "_", text)
    return text.strip("_")


class DeviceConfig(BaseModel):
    """One fleet member.

    Driver-specific settings are kept as extra fields and can be read
    with :meth:`get`.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    device_class: str = Field(..., alias="class", min_length=1)
    subscribe: dict[str, str] = Field(
        default_factory=dict,
        description="Command key -> command topic"
    )

    @field_validator("subscribe", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        """Treat a null subscribe block as empty."""
        if v is None:
            return {}
        return v

    def get(self, name: str, default: Any = None) -> Any:
        """Get a driver-specific setting."""
        extra = self.model_extra or {}
        return extra.get(name, default)


class FleetConfig(BaseModel):
    """Top-level fleet document, replaces the previous one on every arrival."""

    support: list[str] = Field(
        default_factory=list,
        description="Enabled feature flags (e.g. 'homeassistant')"
    )
    devices: list[Any] = Field(
        ...,
        description="Ordered device entries, validated individually"
    )

    @property
    def homeassistant(self) -> bool:
        """Check if Home Assistant discovery is enabled."""
        return HOMEASSISTANT_SUPPORT in self.support

    @classmethod
    def from_payload(cls, payload: Union[bytes, str]) -> "FleetConfig":
        """Parse a raw config-topic payload.

        Raises:
            FleetConfigParseError: If the payload is not a JSON object
            FleetConfigValidationError: If required fields are missing
        """
        try:
            data = json.loads(payload)
        except (ValueError, UnicodeDecodeError) as e:
            raise FleetConfigParseError(f"Invalid JSON in fleet config: {e}") from e

        if not isinstance(data, dict):
            raise FleetConfigParseError(
                f"Fleet config must be a JSON object, got {type(data).__name__}"
            )

        try:
            return cls(**data)
        except ValidationError as e:
            raise FleetConfigValidationError(f"Invalid fleet config: {e}") from e
