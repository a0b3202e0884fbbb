"""Edge agent bridging MQTT control-plane commands with local services."""

__version__ = "0.1.0"
