"""Utility helpers."""

from .logging import setup_logging, log_device_message

__all__ = ["setup_logging", "log_device_message"]
