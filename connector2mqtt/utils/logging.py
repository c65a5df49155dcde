"""Logging configuration for Connector2MQTT."""

import logging
import sys
from pathlib import Path
from typing import Optional

device_logger = logging.getLogger("connector2mqtt.devices")


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None,
) -> None:
    """Configure application logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for log output
        format_string: Custom log format string
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(format_string)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove any existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Reduce noise from libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiomqtt").setLevel(logging.WARNING)

    logging.info(f"Logging configured: level={level}")
    if log_file:
        logging.info(f"Log file: {log_file}")


def format_device_message(icon: Optional[str], text: str, device=None) -> str:
    """Render a device event line as ``<icon>  [<device>] <text>``."""
    parts = []
    if icon:
        parts.append(f"{icon} ")
    if device is not None:
        parts.append(f"[{device.name}]")
    parts.append(str(text))
    return " ".join(parts)


def log_device_message(
    icon: Optional[str],
    text: str,
    device=None,
    level: int = logging.INFO,
) -> None:
    """Log a message emitted by (or about) a device driver."""
    device_logger.log(level, format_device_message(icon, text, device))
