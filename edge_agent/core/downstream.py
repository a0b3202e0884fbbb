"""Configuration files of downstream services managed by the agent.

The control plane can overwrite the configuration of a small, fixed set of
local services. Content arrives base64-encoded (the command grammar cannot
carry commas or whitespace), is handed to the service's own config object to
parse, and is then written to the requested path. Announcing the new file on
the internal bus is a separate step, see :func:`notify_config_ready`.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol

from .. import constants

LOGGER = logging.getLogger(__name__)


class DownstreamConfig(Protocol):
    """Load/save capability exposed by a downstream service configuration."""

    file: Optional[Path]

    def read_bytes(self, data: bytes) -> None: ...

    def save(self) -> None: ...


class ExportConfig:
    """Configuration of the export service (TOML document)."""

    def __init__(self) -> None:
        self.file: Optional[Path] = None
        self.document: Dict[str, Any] = {}
        self._content: bytes = b""

    @property
    def routes(self) -> list[Dict[str, Any]]:
        return list(self.document.get("routes", []))

    def read_bytes(self, data: bytes) -> None:
        """Parse ``data`` as TOML; raises ``tomllib.TOMLDecodeError`` on bad input."""

        self.document = tomllib.loads(data.decode("utf-8"))
        self._content = data

    def save(self) -> None:
        if self.file is None:
            raise ValueError("Export configuration has no destination file")
        self.file.parent.mkdir(parents=True, exist_ok=True)
        self.file.write_bytes(self._content)
        LOGGER.info("Export configuration written to %s", self.file)


DOWNSTREAM_SERVICES: Dict[str, Callable[[], DownstreamConfig]] = {
    "export": ExportConfig,
}


def is_known_service(service: str) -> bool:
    return service in DOWNSTREAM_SERVICES


def persist_service_config(
    service: str, content: bytes, file_name: str
) -> DownstreamConfig:
    """Populate ``service``'s config object from ``content`` and save it to ``file_name``.

    Raises KeyError for services outside :data:`DOWNSTREAM_SERVICES`; parse
    and write errors from the config object propagate unchanged.
    """

    factory = DOWNSTREAM_SERVICES[service]
    config = factory()
    config.read_bytes(content)
    config.file = Path(file_name)
    config.save()
    return config


class ConfigReadyPublisher(Protocol):
    async def publish(self, subject: str, payload: bytes = b"") -> None: ...


def config_ready_subject(service: str) -> str:
    return f"{constants.COMMANDS_SUBJECT}.{service}.{constants.CONFIG_SUBJECT}"


async def notify_config_ready(nats: ConfigReadyPublisher, service: str) -> None:
    """Tell ``service`` that a fresh configuration file is available."""

    subject = config_ready_subject(service)
    LOGGER.debug("Announcing new configuration on %s", subject)
    await nats.publish(subject, b"")
