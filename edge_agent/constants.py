"""Constants used across the edge-agent package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "edge-agent"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path("/etc") / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_LOG_PATH = Path("/var/log") / APP_NAME / f"{APP_NAME}.log"

DEFAULT_BROKER_HOST = "localhost"
DEFAULT_BROKER_PORT = 1883
DEFAULT_NATS_URL = "nats://localhost:4222"
DEFAULT_EDGEX_URL = "http://localhost:48090/api/v1/"

HEARTBEAT_SUBJECT = "heartbeat.*"
COMMANDS_SUBJECT = "commands"
CONFIG_SUBJECT = "config"
