"""MQTT client, topic routing and Home Assistant discovery integration."""

from .client import MQTTClient
from .router import TopicRouter
from .publisher import EntityPublisher
from .discovery import DiscoveryGenerator

__all__ = ["MQTTClient", "TopicRouter", "EntityPublisher", "DiscoveryGenerator"]
