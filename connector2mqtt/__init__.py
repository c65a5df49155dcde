"""Connector2MQTT - bridge a configurable device fleet to MQTT."""

__version__ = "0.1.0"
