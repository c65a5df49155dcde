"""Line-oriented serial device.

Reads ``key=value`` lines from a serial port and publishes each key as a
sensor entity. Commands are written back to the port as ``key=value``
lines.

Fleet entry settings: ``port`` (required), ``baudrate`` (default 9600),
``unit`` (optional map key -> unit of measurement).
"""

import asyncio
import logging
from typing import Optional

import serial_asyncio

from ..models import DeviceConfig, Entity, slugify
from .base import Device

logger = logging.getLogger(__name__)


class SerialLineDevice(Device):
    """Serial port speaking a ``key=value`` line protocol."""

    manufacturer = "Generic"
    model = "Serial line device"

    def __init__(self, config: DeviceConfig):
        super().__init__(config)
        self.manufacturer = config.get("manufacturer", self.manufacturer)
        self.model = config.get("model", self.model)
        self.version = str(config.get("version", self.version))
        self.port: Optional[str] = config.get("port")
        self.baudrate: int = int(config.get("baudrate", 9600))
        self.units: dict = config.get("unit") or {}
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._read_task: Optional[asyncio.Task] = None

    async def connect(self) -> Optional[str]:
        if not self.port:
            return "no serial port configured"

        logger.info(f"Connecting to {self.port} at {self.baudrate} baud")
        try:
            self._reader, self._writer = await serial_asyncio.open_serial_connection(
                url=self.port,
                baudrate=self.baudrate,
            )
        except Exception as e:
            return f"cannot open {self.port}: {e}"

        self._read_task = asyncio.create_task(self._read_loop())
        return None

    async def disconnect(self) -> None:
        if self._read_task:
            self._read_task.cancel()
            try:
                await self._read_task
            except asyncio.CancelledError:
                pass
            self._read_task = None

        if self._writer:
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except Exception as e:
                logger.debug(f"Error closing {self.port}: {e}")
            self._writer = None

        self._reader = None
        logger.info(f"Disconnected from {self.port}")

    async def handle(self, key: str, state: str, value: str) -> None:
        if not self._writer:
            await self.message("⚠️", f"not connected, dropping command {key}={value}")
            return

        self._writer.write(f"{key}={value}\n".encode())
        await self._writer.drain()
        logger.debug(f"Sent {key}={value} to {self.port}")

    def parse_line(self, line: str) -> Optional[Entity]:
        """Turn a ``key=value`` line into a sensor entity."""
        name, sep, value = line.strip().partition("=")
        name = name.strip()
        if not sep or not name:
            return None

        key = slugify(name)
        return Entity(
            key=key,
            name=name,
            type="sensor",
            unit=self.units.get(key),
            states={"state": value.strip()},
        )

    async def _read_loop(self) -> None:
        while self._reader is not None:
            raw = await self._reader.readline()
            if not raw:
                await self.message("⚠️", f"serial port {self.port} closed")
                break

            entity = self.parse_line(raw.decode(errors="replace"))
            if entity is None:
                logger.debug(f"Ignoring line from {self.port}: {raw!r}")
                continue
            await self.publish_entity(entity)
