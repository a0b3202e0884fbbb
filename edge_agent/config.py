"""Configuration loader for edge-agent."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants


@dataclass(slots=True)
class ChannelsConfig:
    control: str = ""
    data: str = ""


@dataclass(slots=True)
class MQTTConfig:
    broker_host: str = constants.DEFAULT_BROKER_HOST
    broker_port: int = constants.DEFAULT_BROKER_PORT
    username: Optional[str] = None  # Thing ID on the control plane
    password: Optional[str] = None  # Thing key on the control plane
    client_id: Optional[str] = None


@dataclass(slots=True)
class NATSConfig:
    url: str = constants.DEFAULT_NATS_URL


@dataclass(slots=True)
class EdgeXConfig:
    url: str = constants.DEFAULT_EDGEX_URL
    timeout_seconds: float = 10.0


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class HealthConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0


@dataclass(slots=True)
class AgentConfig:
    channels: ChannelsConfig
    mqtt: MQTTConfig
    nats: NATSConfig
    edgex: EdgeXConfig
    logging: LoggingConfig
    health: HealthConfig
    raw: ConfigParser
    path: Path

    @property
    def control_channel(self) -> str:
        return self.channels.control


def load_config(path: Optional[Path] = None) -> AgentConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "channels": {
                "control": "",
                "data": "",
            },
            "mqtt": {
                "broker_host": constants.DEFAULT_BROKER_HOST,
                "broker_port": str(constants.DEFAULT_BROKER_PORT),
            },
            "nats": {
                "url": constants.DEFAULT_NATS_URL,
            },
            "edgex": {
                "url": constants.DEFAULT_EDGEX_URL,
                "timeout_seconds": "10.0",
            },
            "logging": {
                "level": "INFO",
                "log_network": "false",
            },
            "health": {
                "enabled": "false",
                "host": "127.0.0.1",
                "port": "0",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    broker_host_value = parser.get("mqtt", "broker_host")
    broker_port_value = parser.getint(
        "mqtt", "broker_port", fallback=constants.DEFAULT_BROKER_PORT
    )

    if ":" in broker_host_value:
        host_part, port_part = broker_host_value.rsplit(":", 1)
        try:
            parsed_port = int(port_part)
        except ValueError:
            pass
        else:
            broker_host_value = host_part
            broker_port_value = parsed_port
            parser.set("mqtt", "broker_host", host_part)
            parser.set("mqtt", "broker_port", str(parsed_port))

    channels = ChannelsConfig(
        control=parser.get("channels", "control"),
        data=parser.get("channels", "data"),
    )

    mqtt = MQTTConfig(
        broker_host=broker_host_value,
        broker_port=broker_port_value,
        username=parser.get("mqtt", "username", fallback=None),
        password=parser.get("mqtt", "password", fallback=None),
        client_id=parser.get("mqtt", "client_id", fallback=None),
    )

    nats = NATSConfig(url=parser.get("nats", "url"))

    edgex = EdgeXConfig(
        url=parser.get("edgex", "url"),
        timeout_seconds=max(
            0.0, parser.getfloat("edgex", "timeout_seconds", fallback=10.0)
        ),
    )

    log_path_value = parser.get("logging", "path", fallback="")
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    health = HealthConfig(
        enabled=parser.getboolean("health", "enabled", fallback=False),
        host=parser.get("health", "host", fallback="127.0.0.1"),
        port=parser.getint("health", "port", fallback=0),
    )

    return AgentConfig(
        channels=channels,
        mqtt=mqtt,
        nats=nats,
        edgex=edgex,
        logging=logging_config,
        health=health,
        raw=parser,
        path=config_path,
    )


def _sync_raw(config: AgentConfig) -> ConfigParser:
    parser = config.raw
    values = {
        "channels": {
            "control": config.channels.control,
            "data": config.channels.data,
        },
        "mqtt": {
            "broker_host": config.mqtt.broker_host,
            "broker_port": str(config.mqtt.broker_port),
            "username": config.mqtt.username,
            "password": config.mqtt.password,
            "client_id": config.mqtt.client_id,
        },
        "nats": {"url": config.nats.url},
        "edgex": {
            "url": config.edgex.url,
            "timeout_seconds": str(config.edgex.timeout_seconds),
        },
        "logging": {
            "level": config.logging.level,
            "path": str(config.logging.path) if config.logging.path else None,
            "log_network": str(config.logging.log_network).lower(),
        },
        "health": {
            "enabled": str(config.health.enabled).lower(),
            "host": config.health.host,
            "port": str(config.health.port),
        },
    }

    for section, options in values.items():
        if not parser.has_section(section):
            parser.add_section(section)
        for key, value in options.items():
            if value is None:
                parser.remove_option(section, key)
            else:
                parser.set(section, key, value)
    return parser


def save_config(config: AgentConfig) -> None:
    """Persist the configuration to its path, including unknown options."""

    parser = _sync_raw(config)
    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        parser.write(stream)
