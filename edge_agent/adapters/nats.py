"""NATS adapter for the local service bus."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import nats
from nats.aio.client import Client as NATS
from nats.aio.msg import Msg
from nats.aio.subscription import Subscription
from nats.errors import Error as NATSError

from ..config import NATSConfig

LOGGER = logging.getLogger(__name__)

SubjectHandler = Callable[[Msg], Awaitable[None]]


class NATSConnectionError(RuntimeError):
    """Raised when the NATS client cannot connect, subscribe or publish."""


class NATSClient:
    """Thin asyncio wrapper over nats-py used for heartbeats and signaling."""

    def __init__(self, config: NATSConfig, *, name: str) -> None:
        self.config = config
        self.name = name
        self._nc: Optional[NATS] = None

    async def connect(self, timeout: float = 10.0) -> None:
        LOGGER.info("Connecting to NATS server at %s", self.config.url)
        try:
            self._nc = await nats.connect(
                servers=[self.config.url],
                name=self.name,
                connect_timeout=timeout,
                error_cb=self._on_error,
                disconnected_cb=self._on_disconnected,
                reconnected_cb=self._on_reconnected,
                closed_cb=self._on_closed,
            )
        except (NATSError, OSError, asyncio.TimeoutError) as exc:
            raise NATSConnectionError(
                f"Failed to connect to NATS at {self.config.url}: {exc}"
            ) from exc
        LOGGER.info("Connected to NATS")

    async def close(self) -> None:
        nc = self._nc
        if nc is None:
            return
        self._nc = None
        if nc.is_closed:
            return
        try:
            await nc.drain()
        except NATSError as exc:
            LOGGER.warning("NATS drain failed, closing: %s", exc)
            await nc.close()

    def is_connected(self) -> bool:
        return self._nc is not None and self._nc.is_connected

    async def subscribe(self, subject: str, handler: SubjectHandler) -> Subscription:
        nc = self._require_connection()
        try:
            subscription = await nc.subscribe(subject, cb=handler)
        except NATSError as exc:
            raise NATSConnectionError(f"Subscribe to {subject} failed: {exc}") from exc
        LOGGER.debug("Subscribed to NATS subject %s", subject)
        return subscription

    async def publish(self, subject: str, payload: bytes = b"") -> None:
        nc = self._require_connection()
        try:
            await nc.publish(subject, payload)
        except NATSError as exc:
            raise NATSConnectionError(f"Publish to {subject} failed: {exc}") from exc

    def _require_connection(self) -> NATS:
        if self._nc is None:
            raise RuntimeError("NATS client not connected")
        return self._nc

    async def _on_error(self, exc: Any) -> None:
        LOGGER.error("NATS client error: %s", exc)

    async def _on_disconnected(self) -> None:
        LOGGER.warning("Disconnected from NATS")

    async def _on_reconnected(self) -> None:
        LOGGER.info("Reconnected to NATS")

    async def _on_closed(self) -> None:
        LOGGER.info("NATS connection closed")
