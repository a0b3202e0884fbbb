"""Routes SenML requests from the control channel to the dispatcher."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, Protocol

from .commands import CommandDispatcher, CommandError
from .senml import EncodingError, decode_senml

LOGGER = logging.getLogger(__name__)

EXEC = "exec"
CONTROL = "control"
CONFIG = "config"


def request_topic(channel: str) -> str:
    return f"channels/{channel}/messages/req"


class RequestSubscriber(Protocol):
    def subscribe(self, topic: str, qos: int = 0) -> None: ...

    def set_message_handler(self, handler): ...


class CommandRouter:
    """Consumes ``channels/<control>/messages/req`` and invokes the dispatcher.

    The first record of the request pack carries the request id in ``bn``,
    the command type in ``n`` and the command line in ``vs``. Requests that
    fail are logged; the control plane sees no response.
    """

    def __init__(
        self,
        mqtt: RequestSubscriber,
        dispatcher: CommandDispatcher,
        control_channel: str,
    ) -> None:
        self._mqtt = mqtt
        self._dispatcher = dispatcher
        self._topic = request_topic(control_channel)
        self._routes: Dict[str, Callable[[str, str], Awaitable[object]]] = {
            EXEC: dispatcher.execute,
            CONTROL: dispatcher.control,
            CONFIG: dispatcher.service_config,
        }

    @property
    def topic(self) -> str:
        return self._topic

    def start(self) -> None:
        self._mqtt.set_message_handler(self.handle_message)
        self._mqtt.subscribe(self._topic, qos=0)
        LOGGER.info("Listening for commands on %s", self._topic)

    def stop(self) -> None:
        self._mqtt.set_message_handler(None)

    async def handle_message(self, topic: str, payload: bytes) -> None:
        if topic != self._topic:
            LOGGER.debug("Ignoring message on unexpected topic %s", topic)
            return

        try:
            records = decode_senml(payload)
        except EncodingError as exc:
            LOGGER.warning("Dropping malformed command payload: %s", exc)
            return
        if not records:
            LOGGER.warning("Dropping empty command payload")
            return

        record = records[0]
        command_id = record.base_name.removesuffix(":")
        command_type = record.name
        command_line = record.string_value or ""

        route = self._routes.get(command_type)
        if route is None:
            LOGGER.warning("Unknown command type '%s' (id=%s)", command_type, command_id)
            return

        try:
            await route(command_id, command_line)
        except CommandError as exc:
            LOGGER.warning(
                "Command %s failed (id=%s, code=%s): %s",
                command_type,
                command_id,
                exc.code,
                exc,
            )
        except Exception:
            LOGGER.exception("Command %s failed (id=%s)", command_type, command_id)
