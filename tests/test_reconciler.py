"""Tests for fleet reconciliation."""

import asyncio
import logging

import pytest

from connector2mqtt.models import FleetConfig
from connector2mqtt.mqtt.discovery import DiscoveryGenerator
from connector2mqtt.mqtt.publisher import EntityPublisher
from connector2mqtt.mqtt.router import TopicRouter
from connector2mqtt.reconciler import FleetReconciler

POWER = {
    "key": "power",
    "name": "Power",
    "type": "switch",
    "states": {"state": "ON"},
    "commands": ["set"],
}


@pytest.fixture
def reconciler(fake_client, mqtt_config, registry):
    discovery = DiscoveryGenerator(fake_client, mqtt_config)
    publisher = EntityPublisher(fake_client, mqtt_config, discovery)
    return FleetReconciler(fake_client, registry, TopicRouter(fake_client), publisher)


def fleet(devices, support=()):
    return FleetConfig(support=list(support), devices=devices)


class TestReconcile:
    """Tests for building a fleet."""

    @pytest.mark.asyncio
    async def test_empty_fleet(self, reconciler, fake_client):
        """Test an empty device list clears state and creates nothing."""
        await reconciler.reconcile(fleet([{"class": "Foo", "id": "a", "subscribe": {"x": "t/x"}}]))
        reconciler.publisher._published.add("connector/device/a/x")

        result = await reconciler.reconcile(fleet([]))

        assert reconciler.devices == {}
        assert reconciler.router.topics == []
        assert not reconciler.publisher.is_published("connector/device/a/x")
        assert fake_client.unsubscribed == ["t/x"]
        assert result.connected == []

    @pytest.mark.asyncio
    async def test_unknown_class(self, reconciler, caplog):
        """Test an unknown class is skipped with a warning."""
        with caplog.at_level(logging.WARNING):
            result = await reconciler.reconcile(fleet([{"class": "Unknown", "subscribe": {}}]))

        assert reconciler.devices == {}
        assert result.skipped == ["Unknown"]
        assert "Unknown device class in config: Unknown" in caplog.text

    @pytest.mark.asyncio
    async def test_invalid_entry_skipped(self, reconciler):
        """Test entries without a class do not stop the others."""
        result = await reconciler.reconcile(fleet(["junk", {"subscribe": {}}, {"class": "Foo", "id": "foo"}]))

        assert result.skipped == ["0", "1"]
        assert list(reconciler.devices) == ["foo"]

    @pytest.mark.asyncio
    async def test_homeassistant_scenario(self, reconciler, fake_client):
        """Test a connected device publishes state, discovery and routes commands."""
        result = await reconciler.reconcile(fleet(
            [{
                "class": "Foo",
                "id": "foo",
                "subscribe": {"power": "connector/device/foo/power/set"},
                "entities": [POWER],
            }],
            support=["homeassistant"],
        ))

        assert result.connected == ["foo"]
        assert "homeassistant/status" in fake_client.subscribed

        descriptor, = fake_client.payloads("connector/device/foo/power")
        assert descriptor["type"] == "switch"
        assert fake_client.payloads("connector/device/foo/power/state") == ["ON"]
        assert len(fake_client.payloads("homeassistant/switch/foo_power/config")) == 1
        assert all(retain for _, _, retain in fake_client.published)

        await reconciler.router.dispatch("connector/device/foo/power/set", "set", "OFF")
        assert reconciler.devices["foo"].handled == [("power", "set", "OFF")]

    @pytest.mark.asyncio
    async def test_status_topic_subscribed_once(self, reconciler, fake_client):
        """Test the hub status subscription is idempotent."""
        await reconciler.reconcile(fleet([], support=["homeassistant"]))
        await reconciler.reconcile(fleet([], support=["homeassistant"]))

        assert fake_client.subscribed.count("homeassistant/status") == 1

    @pytest.mark.asyncio
    async def test_sequential_in_order(self, reconciler, fake_client):
        """Test devices are connected strictly in config order."""
        order = []
        original = reconciler.registry.lookup("Foo")

        def factory(config):
            device = original(config)
            connect = device.connect

            async def traced():
                order.append(("start", device.id))
                await asyncio.sleep(0)
                result = await connect()
                order.append(("end", device.id))
                return result

            device.connect = traced
            return device

        reconciler.registry._factories["Foo"] = factory

        await reconciler.reconcile(fleet([{"class": "Foo", "id": "a"}, {"class": "Foo", "id": "b"}]))

        assert order == [("start", "a"), ("end", "a"), ("start", "b"), ("end", "b")]


class TestFailures:
    """Tests for per-device failure isolation."""

    @pytest.mark.asyncio
    async def test_connect_failure_reason(self, reconciler):
        """Test a string result marks the device failed and others still connect."""
        result = await reconciler.reconcile(fleet([
            {"class": "Foo", "id": "bad", "fail": "timeout", "subscribe": {"p": "t/bad"}},
            {"class": "Foo", "id": "good"},
        ]))

        assert result.failed == {"bad": "timeout"}
        assert result.connected == ["good"]
        assert list(reconciler.devices) == ["good"]
        assert "t/bad" not in reconciler.router.topics

    @pytest.mark.asyncio
    async def test_connect_exception(self, reconciler):
        """Test an exception from connect is a failure with its message as reason."""
        result = await reconciler.reconcile(fleet([{"class": "Foo", "id": "x", "raise": "port busy"}]))

        assert result.failed == {"x": "port busy"}
        assert reconciler.devices == {}

    @pytest.mark.asyncio
    async def test_failed_device_drops_entity_routes(self, reconciler, fake_client):
        """Test command routes registered while connecting are removed on failure."""
        await reconciler.reconcile(fleet([
            {"class": "Foo", "id": "bad", "fail": "nope", "entities": [POWER]},
        ]))

        assert reconciler.router.topics == []
        assert fake_client.unsubscribed == ["connector/device/bad/power/set"]

    @pytest.mark.asyncio
    async def test_disconnect_failure_does_not_block_teardown(self, reconciler):
        """Test all devices are torn down even if one fails to disconnect."""
        await reconciler.reconcile(fleet([
            {"class": "Foo", "id": "a", "disconnect_error": True},
            {"class": "Foo", "id": "b"},
        ]))
        a, b = reconciler.devices["a"], reconciler.devices["b"]

        await reconciler.reconcile(fleet([]))

        assert a.disconnect_calls == 1
        assert b.disconnect_calls == 1
        assert reconciler.devices == {}

    @pytest.mark.asyncio
    async def test_subscribe_failure_isolated(self, reconciler, fake_client):
        """Test a broker error on one subscription does not stop later devices."""
        subscribe = fake_client.subscribe

        async def flaky(topic):
            if topic == "t/broken":
                raise ConnectionError("Not connected to MQTT broker")
            await subscribe(topic)

        fake_client.subscribe = flaky

        result = await reconciler.reconcile(fleet([
            {"class": "Foo", "id": "a", "subscribe": {"p": "t/broken", "q": "t/a"}},
            {"class": "Foo", "id": "b", "subscribe": {"p": "t/b"}},
        ]))

        assert result.connected == ["a", "b"]
        assert reconciler.router.topics == ["t/a", "t/b"]

    @pytest.mark.asyncio
    async def test_duplicate_id_skipped(self, reconciler):
        """Test a second device with the same id is not connected."""
        result = await reconciler.reconcile(fleet([
            {"class": "Foo", "id": "same"},
            {"class": "Foo", "id": "same"},
        ]))

        assert result.connected == ["same"]
        assert result.skipped == ["same"]


class TestLifecycle:
    """Tests for teardown, listeners and exclusivity."""

    @pytest.mark.asyncio
    async def test_listeners_detached_on_teardown(self, reconciler, fake_client):
        """Test entity updates from a removed device are no longer published."""
        await reconciler.reconcile(fleet([{"class": "Foo", "id": "old"}]))
        old = reconciler.devices["old"]

        await reconciler.reconcile(fleet([]))
        await old.publish_entity(POWER)

        assert "connector/device/old/power" not in fake_client.topics()

    @pytest.mark.asyncio
    async def test_entity_commands_routed(self, reconciler):
        """Test entity command topics route to handle(entity key, ...)."""
        await reconciler.reconcile(fleet([{"class": "Foo", "id": "foo", "entities": [POWER]}]))

        await reconciler.router.dispatch("connector/device/foo/power/set", "set", "ON")

        assert reconciler.devices["foo"].handled == [("power", "set", "ON")]

    @pytest.mark.asyncio
    async def test_reconciliations_serialized(self, reconciler):
        """Test a second config waits for the first to finish."""
        gate = asyncio.Event()
        original = reconciler.registry.lookup("Foo")

        def factory(config):
            device = original(config)
            connect = device.connect

            async def slow():
                await gate.wait()
                return await connect()

            device.connect = slow
            return device

        reconciler.registry._factories["Foo"] = factory

        first = asyncio.create_task(reconciler.reconcile(fleet([{"class": "Foo", "id": "a"}])))
        await asyncio.sleep(0)
        assert reconciler.busy

        second = asyncio.create_task(reconciler.reconcile(fleet([{"class": "Foo", "id": "b"}])))
        await asyncio.sleep(0)
        assert not second.done()

        gate.set()
        await asyncio.gather(first, second)

        assert list(reconciler.devices) == ["b"]

    @pytest.mark.asyncio
    async def test_shutdown(self, reconciler):
        """Test shutdown disconnects every device."""
        await reconciler.reconcile(fleet([{"class": "Foo", "id": "a"}]))
        device = reconciler.devices["a"]

        await reconciler.shutdown()

        assert device.disconnect_calls == 1
        assert reconciler.devices == {}
