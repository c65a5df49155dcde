"""Topic -> device handler routing table.

Keeps the broker's subscription set in step with the handlers registered
by the fleet. A (topic, device) pair holds at most one handler; the first
registration wins and later ones are ignored.
"""

import logging
from typing import Awaitable, Callable

from .client import MQTTClient

logger = logging.getLogger(__name__)

# Called with (last topic segment, raw payload)
TopicHandler = Callable[[str, str], Awaitable[None]]


class TopicRouter:
    """Dispatch inbound messages to per-device handlers."""

    def __init__(self, mqtt_client: MQTTClient):
        """Initialize the router.

        Args:
            mqtt_client: Client used for broker (un)subscribe calls
        """
        self.client = mqtt_client
        self._table: dict[str, dict[str, TopicHandler]] = {}

    @property
    def topics(self) -> list[str]:
        """Topics with at least one registered handler."""
        return list(self._table)

    def handlers(self, topic: str) -> dict[str, TopicHandler]:
        """Registered handlers for a topic, keyed by device id."""
        return dict(self._table.get(topic, {}))

    async def subscribe(self, topic: str, device_id: str, handler: TopicHandler) -> bool:
        """Register a handler for a device on a topic.

        The broker subscription is issued the first time any handler
        exists for the topic.

        Returns:
            True if the handler was inserted, False if the device already
            had a handler on this topic (which is left untouched)
        """
        handlers = self._table.get(topic)
        if handlers is None:
            handlers = self._table[topic] = {}
        elif device_id in handlers:
            return False

        first = not handlers
        handlers[device_id] = handler

        if first:
            try:
                await self.client.subscribe(topic)
            except Exception:
                # Handlers added by others while subscribing stay in place
                handlers.pop(device_id, None)
                if not handlers and self._table.get(topic) is handlers:
                    del self._table[topic]
                raise
        logger.info(f"[{device_id}] subscribed to topic '{topic}'")
        return True

    async def dispatch(self, topic: str, last_segment: str, payload: str) -> int:
        """Invoke every handler registered for a topic.

        A failing handler is logged and does not stop the others.

        Returns:
            Number of handlers invoked
        """
        handlers = self._table.get(topic)
        if not handlers:
            return 0

        for device_id, handler in list(handlers.items()):
            try:
                await handler(last_segment, payload)
            except Exception as e:
                logger.error(
                    f"[{device_id}] handler for '{topic}' failed: {e}",
                    exc_info=True,
                )
        return len(handlers)

    def remove_device(self, device_id: str) -> list[str]:
        """Remove every handler of one device.

        Returns:
            Topics left without any handler, which the caller should
            unsubscribe from
        """
        emptied = []
        for topic, handlers in list(self._table.items()):
            if handlers.pop(device_id, None) is not None and not handlers:
                del self._table[topic]
                emptied.append(topic)
        return emptied

    def reset_all(self) -> list[str]:
        """Clear the whole table.

        Returns:
            Every topic that was subscribed before the reset, so the
            caller can unsubscribe from the broker in one call
        """
        topics = list(self._table)
        self._table = {}
        return topics
