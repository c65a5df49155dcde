"""Configuration management with Pydantic validation.

Supports three configuration sources (in priority order):
1. YAML config file (for traditional deployments)
2. Environment variables (for Docker)
3. Default values

The fleet itself (which devices to run) is not part of this configuration;
it arrives over MQTT on the config topic.
"""

import os
from pathlib import Path
from typing import Optional, Literal
import yaml
from pydantic import BaseModel, Field, field_validator


class MQTTConfig(BaseModel):
    """MQTT broker configuration."""

    host: str = Field(
        default="localhost",
        description="MQTT broker hostname or IP"
    )
    port: int = Field(
        default=1883,
        ge=1,
        le=65535,
        description="MQTT broker port"
    )
    username: Optional[str] = Field(
        default=None,
        description="MQTT username (optional)"
    )
    password: Optional[str] = Field(
        default=None,
        description="MQTT password (optional)"
    )
    client_id: str = Field(
        default="connector2mqtt",
        description="MQTT client identifier"
    )
    base_topic: str = Field(
        default="connector",
        description="Root namespace for config, state and command topics"
    )
    discovery_prefix: str = Field(
        default="homeassistant",
        description="Home Assistant MQTT discovery prefix"
    )
    qos: int = Field(
        default=0,
        ge=0,
        le=2,
        description="MQTT QoS level"
    )
    reconnect_interval: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait before reconnecting to the broker"
    )

    @field_validator("username", "password", mode="before")
    @classmethod
    def empty_str_to_none(cls, v):
        """Convert empty strings to None."""
        if v == "":
            return None
        return v

    @property
    def config_topic(self) -> str:
        """Topic carrying the retained fleet configuration."""
        return f"{self.base_topic}/config"

    @property
    def status_topic(self) -> str:
        """Topic on which Home Assistant announces its lifecycle."""
        return f"{self.discovery_prefix}/status"


class FleetSettings(BaseModel):
    """Local fleet bootstrap settings."""

    config_file: Optional[Path] = Field(
        default=Path("config.json"),
        description="Local fleet config, republished to the config topic on connect"
    )
    disabled_classes: list[str] = Field(
        default_factory=list,
        description="Device classes that are never registered"
    )

    @field_validator("disabled_classes", mode="before")
    @classmethod
    def split_csv(cls, v):
        """Accept a comma separated string."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )
    file: Optional[Path] = Field(
        default=None,
        description="Log file path (optional)"
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )


class AppConfig(BaseModel):
    """Complete application configuration."""

    mqtt: MQTTConfig = Field(
        default_factory=MQTTConfig,
        description="MQTT broker settings"
    )
    fleet: FleetSettings = Field(
        default_factory=FleetSettings,
        description="Fleet bootstrap settings"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging settings"
    )


# Environment variable mapping
ENV_MAPPING = {
    # MQTT
    "MQTT_HOST": ("mqtt", "host"),
    "MQTT_PORT": ("mqtt", "port", int),
    "MQTT_USERNAME": ("mqtt", "username"),
    "MQTT_PASSWORD": ("mqtt", "password"),
    "MQTT_CLIENT_ID": ("mqtt", "client_id"),
    "MQTT_BASE_TOPIC": ("mqtt", "base_topic"),
    "MQTT_DISCOVERY_PREFIX": ("mqtt", "discovery_prefix"),
    "MQTT_QOS": ("mqtt", "qos", int),
    "MQTT_RECONNECT_INTERVAL": ("mqtt", "reconnect_interval", float),

    # Fleet
    "FLEET_CONFIG_FILE": ("fleet", "config_file"),
    "FLEET_DISABLED_CLASSES": ("fleet", "disabled_classes"),

    # Logging
    "LOG_LEVEL": ("logging", "level"),
    "LOG_FILE": ("logging", "file"),
}


def _get_env_value(env_var: str, mapping: tuple):
    """Get environment variable value with optional type conversion."""
    value = os.environ.get(env_var)
    if value is None:
        return None

    # Apply type conversion if specified
    if len(mapping) > 2:
        converter = mapping[2]
        try:
            return converter(value)
        except (ValueError, TypeError):
            return value
    return value


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables.

    Returns:
        AppConfig with values from environment (or defaults)
    """
    config_dict = {
        "mqtt": {},
        "fleet": {},
        "logging": {},
    }

    for env_var, mapping in ENV_MAPPING.items():
        value = _get_env_value(env_var, mapping)
        if value is not None:
            section = mapping[0]
            key = mapping[1]
            config_dict[section][key] = value

    return AppConfig(**config_dict)


def load_config(config_path: str) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Validated AppConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config validation fails
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path, "r") as f:
        raw_config = yaml.safe_load(f) or {}

    # Support environment variable substitution
    raw_config = _substitute_env_vars(raw_config)

    return AppConfig(**raw_config)


def get_config(
    config_path: Optional[str] = None,
    overrides: Optional[dict] = None,
) -> AppConfig:
    """Get configuration from config file or environment variables.

    Priority:
    1. Config file (if path provided and file exists)
    2. Environment variables
    3. Default values

    Args:
        config_path: Optional path to YAML config file
        overrides: Optional MQTT settings (e.g. from the command line)
            applied on top of the loaded configuration

    Returns:
        Validated AppConfig instance
    """
    if config_path and Path(config_path).exists():
        config = load_config(config_path)
    else:
        config = load_config_from_env()

    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
    if overrides:
        config.mqtt = MQTTConfig(**{**config.mqtt.model_dump(), **overrides})

    return config


def _substitute_env_vars(config: dict) -> dict:
    """Recursively substitute environment variables in config values.

    Environment variables are referenced as ${VAR_NAME} or $VAR_NAME.
    """
    if isinstance(config, dict):
        return {k: _substitute_env_vars(v) for k, v in config.items()}
    elif isinstance(config, list):
        return [_substitute_env_vars(item) for item in config]
    elif isinstance(config, str):
        if config.startswith("${") and config.endswith("}"):
            var_name = config[2:-1]
            return os.environ.get(var_name, config)
        elif config.startswith("$") and not config.startswith("${"):
            var_name = config[1:]
            return os.environ.get(var_name, config)
        return config
    else:
        return config


def create_default_config() -> str:
    """Generate default configuration as YAML string."""
    config = AppConfig()
    return yaml.dump(
        config.model_dump(mode="json", exclude_none=True),
        default_flow_style=False,
        sort_keys=False,
    )


def print_env_help() -> str:
    """Generate help text for environment variables."""
    lines = [
        "Environment Variables:",
        "",
        "  MQTT:",
        "    MQTT_HOST               Broker hostname/IP (default: localhost)",
        "    MQTT_PORT               Broker port (default: 1883)",
        "    MQTT_USERNAME           Username (optional)",
        "    MQTT_PASSWORD           Password (optional)",
        "    MQTT_CLIENT_ID          Client ID (default: connector2mqtt)",
        "    MQTT_BASE_TOPIC         Topic namespace (default: connector)",
        "    MQTT_DISCOVERY_PREFIX   HA discovery prefix (default: homeassistant)",
        "    MQTT_QOS                QoS level 0-2 (default: 0)",
        "    MQTT_RECONNECT_INTERVAL Seconds between reconnects (default: 5)",
        "",
        "  Fleet:",
        "    FLEET_CONFIG_FILE       Local fleet config (default: config.json)",
        "    FLEET_DISABLED_CLASSES  Comma separated device classes to skip",
        "",
        "  Logging:",
        "    LOG_LEVEL               DEBUG, INFO, WARNING, ERROR (default: INFO)",
        "    LOG_FILE                Log file path (optional)",
    ]
    return "\n".join(lines)
