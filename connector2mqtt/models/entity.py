"""Pydantic model for device entities."""

from typing import Any
from pydantic import BaseModel, ConfigDict, Field


class Entity(BaseModel):
    """A single observable/controllable capability of a device.

    Field aliases follow the camelCase keys used on the wire, so the
    descriptor published for an entity round-trips through JSON unchanged.
    Unknown keys are kept and published as-is.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    key: str = Field(..., description="Entity key, last segment of its topic")
    name: str = Field(default="", description="Display name")
    type: str = Field(default="sensor", description="Home Assistant component type")
    states: dict[str, Any] = Field(
        default_factory=dict,
        description="Sub-state name -> current value"
    )
    commands: list[str] = Field(
        default_factory=list,
        description="Accepted command names"
    )

    # Discovery hints below are passed through as sent by the driver

    # sensor
    device_class: Any = Field(default=None, alias="class")
    unit: Any = None

    # select: transmitted value -> display label
    options: Any = None

    # climate
    min_temp: Any = Field(default=None, alias="minTemp")
    max_temp: Any = Field(default=None, alias="maxTemp")
    temp_step: Any = Field(default=None, alias="tempStep")
    modes: Any = None
    fan_modes: Any = Field(default=None, alias="fanModes")

    # number
    min: Any = None
    max: Any = None
    step: Any = None

    # light
    brightness_scale: Any = Field(default=None, alias="brightnessScale")
    brightness: Any = None

    def descriptor(self) -> dict[str, Any]:
        """Full descriptor as published to the entity topic."""
        return self.model_dump(by_alias=True, exclude_none=True)
