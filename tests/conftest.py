"""Shared fixtures: an in-memory broker client and a scriptable device."""

import json
from typing import Optional

import pytest

from connector2mqtt.config import MQTTConfig
from connector2mqtt.devices import Device, DeviceRegistry


class FakeMQTTClient:
    """Records publish/subscribe calls instead of talking to a broker."""

    def __init__(self, config: Optional[MQTTConfig] = None):
        self.config = config or MQTTConfig()
        self.published: list[tuple[str, object, bool]] = []
        self.subscribed: list[str] = []
        self.unsubscribed: list[str] = []

    async def publish(self, topic, payload, retain=False, qos=None):
        self.published.append((topic, payload, retain))

    async def publish_json(self, topic, data, retain=False):
        await self.publish(topic, data, retain=retain)

    async def subscribe(self, topic):
        self.subscribed.append(topic)

    async def unsubscribe(self, topics):
        if isinstance(topics, str):
            topics = [topics]
        self.unsubscribed.extend(topics)

    def topics(self) -> list[str]:
        return [topic for topic, _, _ in self.published]

    def payloads(self, topic: str) -> list:
        return [payload for t, payload, _ in self.published if t == topic]


class FooDevice(Device):
    """Test driver; behaviour is driven by its fleet entry.

    ``fail``: reason returned from connect
    ``raise``: message of an exception raised from connect
    ``entities``: entities published while connecting
    """

    manufacturer = "Acme"
    model = "Foo 1"
    version = "2.0"

    def __init__(self, config):
        super().__init__(config)
        self.connected = False
        self.disconnect_calls = 0
        self.handled: list[tuple[str, str, str]] = []

    async def connect(self):
        if self.config.get("raise"):
            raise RuntimeError(self.config.get("raise"))
        for entity in self.config.get("entities", []):
            await self.publish_entity(entity)
        if self.config.get("fail"):
            return self.config.get("fail")
        self.connected = True
        return True

    async def disconnect(self):
        self.disconnect_calls += 1
        self.connected = False
        if self.config.get("disconnect_error"):
            raise RuntimeError("device unplugged")

    async def handle(self, key, state, value):
        self.handled.append((key, state, value))


@pytest.fixture
def mqtt_config():
    """Default MQTT settings."""
    return MQTTConfig()


@pytest.fixture
def fake_client(mqtt_config):
    """In-memory MQTT client."""
    return FakeMQTTClient(mqtt_config)


@pytest.fixture
def registry():
    """Registry holding the Foo test driver."""
    registry = DeviceRegistry()
    registry.register("Foo", FooDevice)
    return registry


@pytest.fixture
def fleet_payload():
    """Build a raw fleet config payload."""

    def build(devices, support=()):
        return json.dumps({"support": list(support), "devices": devices}).encode()

    return build


@pytest.fixture
def make_device():
    """Create a Foo device from fleet entry fields."""
    from connector2mqtt.models import DeviceConfig

    def build(**fields):
        fields.setdefault("id", "foo")
        fields.setdefault("name", "Foo")
        return FooDevice(DeviceConfig(**{"class": "Foo", **fields}))

    return build
