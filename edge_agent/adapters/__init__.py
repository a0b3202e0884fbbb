"""Adapter modules for external integrations."""

from .edgex import EdgeXClient, EdgeXError
from .mqtt import MQTTClient, MQTTConnectionError
from .nats import NATSClient, NATSConnectionError

__all__ = [
    "EdgeXClient",
    "EdgeXError",
    "MQTTClient",
    "MQTTConnectionError",
    "NATSClient",
    "NATSConnectionError",
]
