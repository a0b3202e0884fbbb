from pathlib import Path

from edge_agent import constants
from edge_agent.config import load_config, save_config


def test_load_config_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "edge-agent.cfg")

    assert config.channels.control == ""
    assert config.mqtt.broker_host == constants.DEFAULT_BROKER_HOST
    assert config.mqtt.broker_port == 1883
    assert config.mqtt.username is None
    assert config.nats.url == "nats://localhost:4222"
    assert config.edgex.url == constants.DEFAULT_EDGEX_URL
    assert config.edgex.timeout_seconds == 10.0
    assert config.logging.level == "INFO"
    assert config.logging.path is None
    assert config.health.enabled is False


def test_load_config_parses_broker_host_with_port(tmp_path: Path) -> None:
    config_path = tmp_path / "edge-agent.cfg"
    config_path.write_text("[mqtt]\nbroker_host = localhost:8883\n", encoding="utf-8")

    config = load_config(config_path)

    assert config.mqtt.broker_host == "localhost"
    assert config.mqtt.broker_port == 8883
    assert config.raw.get("mqtt", "broker_port") == "8883"


def test_load_config_overrides_defaults(tmp_path):
    config_file = tmp_path / "edge-agent.cfg"
    config_file.write_text(
        """
[channels]
control = 3c2a3f86-control
data = 9b1c0f02-data

[mqtt]
broker_host = mqtt.example.com
username = thing-id
password = thing-key

[nats]
url = nats://10.0.0.5:4222

[edgex]
url = http://edgex:48090/api/v1/

[logging]
level = debug
path = ~/edge-agent.log

[health]
enabled = true
port = 8181
"""
    )

    config = load_config(config_file)

    assert config.control_channel == "3c2a3f86-control"
    assert config.channels.data == "9b1c0f02-data"
    assert config.mqtt.username == "thing-id"
    assert config.mqtt.password == "thing-key"
    assert config.nats.url == "nats://10.0.0.5:4222"
    assert config.edgex.url == "http://edgex:48090/api/v1/"
    assert config.logging.level == "debug"
    assert config.logging.path == Path("~/edge-agent.log").expanduser()
    assert config.health.enabled is True
    assert config.health.port == 8181


def test_save_config_round_trips_fields_and_extra_options(tmp_path: Path) -> None:
    source = tmp_path / "edge-agent.cfg"
    source.write_text("[terminal]\nsession_timeout = 60\n", encoding="utf-8")
    config = load_config(source)
    config.channels.control = "ctrl"
    config.mqtt.username = "thing-id"
    config.path = tmp_path / "saved" / "edge-agent.cfg"

    save_config(config)

    reloaded = load_config(config.path)
    assert reloaded.control_channel == "ctrl"
    assert reloaded.mqtt.username == "thing-id"
    assert reloaded.mqtt.password is None
    assert reloaded.raw.get("terminal", "session_timeout") == "60"
