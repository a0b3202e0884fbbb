"""Heartbeat listener feeding the service registry."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

from . import constants
from .core.services import ServiceRegistry

LOGGER = logging.getLogger(__name__)


class HeartbeatSubscriptionError(RuntimeError):
    """Raised when the heartbeat subscription cannot be established."""


class HeartbeatBus(Protocol):
    async def subscribe(
        self, subject: str, handler: Callable[[Any], Awaitable[None]]
    ) -> Any: ...


def service_name_from_subject(subject: str) -> Optional[str]:
    """Return the service name encoded in ``heartbeat.<name>``, if any."""

    tokens = subject.split(".")
    if len(tokens) < 2:
        return None
    return tokens[1]


class HeartbeatListener:
    """Tracks service liveness from ``heartbeat.*`` messages on the bus."""

    def __init__(
        self,
        bus: HeartbeatBus,
        registry: ServiceRegistry,
        *,
        subject: str = constants.HEARTBEAT_SUBJECT,
    ) -> None:
        self._bus = bus
        self._registry = registry
        self._subject = subject
        self._subscription: Any = None

    @property
    def active(self) -> bool:
        return self._subscription is not None

    async def start(self) -> None:
        if self._subscription is not None:
            return
        try:
            self._subscription = await self._bus.subscribe(
                self._subject, self._handle_message
            )
        except Exception as exc:
            raise HeartbeatSubscriptionError(
                f"Failed to subscribe to heartbeat subject {self._subject}"
            ) from exc
        LOGGER.info("Listening for service heartbeats on %s", self._subject)

    async def stop(self) -> None:
        subscription = self._subscription
        self._subscription = None
        if subscription is None:
            return
        unsubscribe = getattr(subscription, "unsubscribe", None)
        if unsubscribe is not None:
            await unsubscribe()

    async def _handle_message(self, msg: Any) -> None:
        self.handle_subject(msg.subject)

    def handle_subject(self, subject: str) -> None:
        name = service_name_from_subject(subject)
        if name is None:
            LOGGER.error("Heartbeat subject has incorrect length: %s", subject)
            return
        # One entry per name; several instances of one service share it.
        self._registry.register_or_touch(name)
