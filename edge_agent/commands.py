"""Command dispatch for control-plane requests.

Commands arrive as a single line such as ``edgex-config,core-data`` and are
parsed with a fixed grammar: all whitespace is removed and the rest is split
on commas. The first token selects the action, the others are its arguments.
There is no escaping, which is why file contents travel base64-encoded.

Every successful command publishes exactly one SenML record on
``channels/<control>/messages/res``. A failed command publishes nothing and
raises to the caller.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Protocol, Sequence, Tuple

from .config import AgentConfig, save_config
from .core.downstream import (
    is_known_service,
    notify_config_ready,
    persist_service_config,
)
from .core.services import Service, ServiceRegistry
from .senml import encode_senml

LOGGER = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


class CommandError(RuntimeError):
    """Base class for errors raised while dispatching a command."""

    code = "command_error"


class InvalidCommandError(CommandError):
    """Raised for empty or too short command lines."""

    code = "invalid_command"


class UnknownCommandError(CommandError):
    """Raised when the command verb is outside the supported set."""

    code = "unknown_command"


class NoSuchServiceError(CommandError):
    """Raised when a configuration targets an unsupported service."""

    code = "no_such_service"


class CommandExecutionError(CommandError):
    """Raised when a shell command exits with a non-zero status."""

    code = "execution_failed"

    def __init__(self, program: str, returncode: int, output: str) -> None:
        super().__init__(f"'{program}' exited with status {returncode}")
        self.program = program
        self.returncode = returncode
        self.output = output


class ControlVerb(str, Enum):
    OPERATION = "edgex-operation"
    CONFIG = "edgex-config"
    METRICS = "edgex-metrics"
    PING = "edgex-ping"

    @classmethod
    def from_token(cls, token: str) -> Optional["ControlVerb"]:
        try:
            return cls(token)
        except ValueError:
            return None


class ServiceConfigVerb(str, Enum):
    VIEW = "view"
    SAVE = "save"

    @classmethod
    def from_token(cls, token: str) -> Optional["ServiceConfigVerb"]:
        try:
            return cls(token)
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class ParsedCommand:
    verb: str
    args: Tuple[str, ...]


def parse_command(command_line: str) -> ParsedCommand:
    """Split a raw command line into its verb and positional arguments."""

    normalized = _WHITESPACE.sub("", command_line)
    if not normalized:
        raise InvalidCommandError("Command is empty")
    tokens = normalized.split(",")
    return ParsedCommand(verb=tokens[0], args=tuple(tokens[1:]))


def response_topic(channel: str) -> str:
    return f"channels/{channel}/messages/res"


ProcessRunner = Callable[[str, Sequence[str]], Awaitable[str]]


async def run_process(program: str, args: Sequence[str]) -> str:
    """Run ``program`` and return its combined stdout and stderr."""

    process = await asyncio.create_subprocess_exec(
        program,
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    raw_output, _ = await process.communicate()
    output = raw_output.decode("utf-8", errors="replace")
    if process.returncode != 0:
        raise CommandExecutionError(program, process.returncode, output)
    return output


class ResponsePublisher(Protocol):
    def publish(
        self, topic: str, payload: bytes, qos: int = 0, retain: bool = False
    ) -> None: ...


class BusPublisher(Protocol):
    async def publish(self, subject: str, payload: bytes = b"") -> None: ...


class DeviceClient(Protocol):
    """Operations of the EdgeX device-management client used by ``control``."""

    async def push_operation(self, args: Sequence[str]) -> str: ...

    async def fetch_config(self, args: Sequence[str]) -> str: ...

    async def fetch_metrics(self, args: Sequence[str]) -> str: ...

    async def ping(self) -> str: ...


class CommandDispatcher:
    """Executes control-plane commands and publishes their SenML responses."""

    def __init__(
        self,
        config: AgentConfig,
        mqtt: ResponsePublisher,
        nats: BusPublisher,
        edgex: DeviceClient,
        registry: ServiceRegistry,
        *,
        runner: Optional[ProcessRunner] = None,
    ) -> None:
        self._config = config
        self._mqtt = mqtt
        self._nats = nats
        self._edgex = edgex
        self._registry = registry
        self._runner = runner or run_process

    @property
    def config(self) -> AgentConfig:
        return self._config

    def services(self) -> Dict[str, Service]:
        return self._registry.snapshot()

    def add_config(self, config: AgentConfig) -> None:
        """Persist ``config`` to its own path without touching the active one."""

        save_config(config)

    def publish(self, channel: str, payload: bytes) -> None:
        self._mqtt.publish(response_topic(channel), payload, qos=0, retain=False)

    async def execute(self, command_id: str, command_line: str) -> bytes:
        """Run a local program; returns the published SenML payload."""

        command = parse_command(command_line)
        if not command.verb:
            raise InvalidCommandError("Command has no program")

        LOGGER.debug("Executing %s with %d argument(s)", command.verb, len(command.args))
        output = await self._runner(command.verb, command.args)

        payload = encode_senml(command_id, command.verb, output)
        self.publish(self._config.control_channel, payload)
        return payload

    async def control(self, command_id: str, command_line: str) -> None:
        """Forward an EdgeX management command to the device client."""

        command = parse_command(command_line)
        if not command.args and command.verb != ControlVerb.PING.value:
            raise InvalidCommandError(f"{command.verb} requires an argument")
        verb = ControlVerb.from_token(command.verb)
        if verb is None:
            raise UnknownCommandError(f"Unknown command: {command.verb}")

        args = list(command.args)
        if verb is ControlVerb.OPERATION:
            response = await self._edgex.push_operation(args)
        elif verb is ControlVerb.CONFIG:
            response = await self._edgex.fetch_config(args)
        elif verb is ControlVerb.METRICS:
            response = await self._edgex.fetch_metrics(args)
        else:
            response = await self._edgex.ping()

        await self._respond(command_id, verb.value, response)

    async def service_config(self, command_id: str, command_line: str) -> None:
        """Show registered services or overwrite a downstream service config.

        ``view`` responds with the service registry as JSON.
        ``save,<service>,<file>,<base64 content>`` writes the decoded content
        to ``file`` through the service's config object, then announces it on
        ``commands.<service>.config``.
        """

        command = parse_command(command_line)
        verb = ServiceConfigVerb.from_token(command.verb)
        if verb is None:
            raise UnknownCommandError(f"Unknown command: {command.verb}")

        response = ""
        if verb is ServiceConfigVerb.VIEW:
            response = json.dumps(self._registry.as_dict())
        else:
            if len(command.args) < 3:
                raise InvalidCommandError(
                    "save requires service, file name and content"
                )
            service, file_name, content = command.args[:3]
            await self._save_service_config(service, file_name, content)

        await self._respond(command_id, verb.value, response)

    async def _save_service_config(
        self, service: str, file_name: str, content: str
    ) -> None:
        try:
            decoded = base64.b64decode(content, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidCommandError(f"Config content is not valid base64: {exc}") from exc

        if not is_known_service(service):
            raise NoSuchServiceError(f"No such service: {service}")

        await asyncio.to_thread(persist_service_config, service, decoded, file_name)
        LOGGER.info("Saved %s configuration to %s", service, file_name)
        await notify_config_ready(self._nats, service)

    async def _respond(self, command_id: str, name: str, value: str) -> None:
        payload = encode_senml(command_id, name, value)
        self.publish(self._config.control_channel, payload)
