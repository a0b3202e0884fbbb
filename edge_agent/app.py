"""Main application entry-point for edge-agent."""

from __future__ import annotations

import asyncio
import logging
import os
from enum import Enum
from typing import Optional

from . import constants
from .adapters import (
    EdgeXClient,
    MQTTClient,
    MQTTConnectionError,
    NATSClient,
    NATSConnectionError,
)
from .commands import CommandDispatcher
from .config import AgentConfig, load_config
from .core import ServiceRegistry
from .health import HealthReporter, HealthServer
from .heartbeat import HeartbeatListener, HeartbeatSubscriptionError
from .logging import configure_logging
from .router import CommandRouter

LOGGER = logging.getLogger(__name__)


class AgentStartupError(RuntimeError):
    """Raised when a component required at startup is unavailable."""


class AgentState(str, Enum):
    COLD_START = "cold_start"
    ACTIVE = "active"
    STOPPING = "stopping"


class EdgeAgentApp:
    """Wires the transports, registry and dispatcher and runs until shutdown."""

    def __init__(
        self,
        config: Optional[AgentConfig] = None,
        *,
        mqtt_client: Optional[MQTTClient] = None,
        nats_client: Optional[NATSClient] = None,
        edgex_client: Optional[EdgeXClient] = None,
    ) -> None:
        self._config = config or load_config()
        client_id = self._config.mqtt.client_id or _build_client_id(self._config)
        self._mqtt = mqtt_client or MQTTClient(self._config.mqtt, client_id=client_id)
        self._nats = nats_client or NATSClient(self._config.nats, name=client_id)
        self._edgex = edgex_client or EdgeXClient(
            self._config.edgex.url, timeout=self._config.edgex.timeout_seconds
        )
        self._registry = ServiceRegistry()
        self._health = HealthReporter()
        self._health_server: Optional[HealthServer] = None
        self._heartbeat: Optional[HeartbeatListener] = None
        self._dispatcher: Optional[CommandDispatcher] = None
        self._router: Optional[CommandRouter] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._state = AgentState.COLD_START

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def registry(self) -> ServiceRegistry:
        return self._registry

    @property
    def dispatcher(self) -> Optional[CommandDispatcher]:
        return self._dispatcher

    async def run(self) -> None:
        """Start all components and block until :meth:`request_shutdown`."""

        self._shutdown_event = asyncio.Event()

        LOGGER.info("edge-agent starting with config: %s", self._config.path)
        try:
            await self._start_services()
            self._state = AgentState.ACTIVE
            LOGGER.info("edge-agent active; awaiting shutdown signal")
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("edge-agent received shutdown signal")
            raise
        finally:
            await self._stop_services()

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    @classmethod
    def start(cls, config: Optional[AgentConfig] = None) -> int:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("edge-agent received shutdown signal")
        except AgentStartupError as exc:
            LOGGER.error("edge-agent failed to start: %s", exc)
            return 1
        return 0

    async def _start_services(self) -> None:
        if not self._config.control_channel:
            raise AgentStartupError("No control channel configured")

        await self._health.update("nats", False, "initialising")
        await self._health.update("mqtt", False, "initialising")

        try:
            await self._nats.connect()
        except NATSConnectionError as exc:
            await self._health.update("nats", False, str(exc))
            raise AgentStartupError(str(exc)) from exc
        await self._health.update("nats", True, None)

        self._heartbeat = HeartbeatListener(self._nats, self._registry)
        try:
            await self._heartbeat.start()
        except HeartbeatSubscriptionError as exc:
            raise AgentStartupError(str(exc)) from exc

        self._mqtt.register_disconnect_handler(self._on_mqtt_disconnect)
        try:
            await self._mqtt.connect()
        except MQTTConnectionError as exc:
            await self._health.update("mqtt", False, str(exc))
            raise AgentStartupError(str(exc)) from exc
        await self._health.update("mqtt", True, None)

        self._dispatcher = CommandDispatcher(
            self._config, self._mqtt, self._nats, self._edgex, self._registry
        )
        self._router = CommandRouter(
            self._mqtt, self._dispatcher, self._config.control_channel
        )
        self._router.start()

        await self._start_health_server()

    async def _start_health_server(self) -> None:
        health = self._config.health
        if not health.enabled or health.port <= 0:
            return

        server = HealthServer(
            self._health, health.host, health.port, registry=self._registry
        )
        try:
            await server.start()
        except OSError as exc:
            LOGGER.error("Failed to start health endpoint: %s", exc)
            await self._health.update("health-endpoint", False, str(exc))
        else:
            self._health_server = server
            await self._health.update("health-endpoint", True, None)

    async def _stop_services(self) -> None:
        self._state = AgentState.STOPPING

        if self._health_server is not None:
            await self._health_server.stop()
            self._health_server = None

        if self._router is not None:
            self._router.stop()
            self._router = None

        await self._mqtt.disconnect()
        await self._health.update("mqtt", False, "shutdown")

        if self._heartbeat is not None:
            await self._heartbeat.stop()
            self._heartbeat = None

        await self._nats.close()
        await self._health.update("nats", False, "shutdown")

        await self._edgex.aclose()

    def _on_mqtt_disconnect(self, rc: int) -> None:
        if self._state is AgentState.STOPPING:
            return
        LOGGER.warning("MQTT connection lost (rc=%s)", rc)
        asyncio.create_task(self._health.update("mqtt", False, f"disconnected rc={rc}"))


def _build_client_id(config: AgentConfig) -> str:
    suffix = config.mqtt.username or str(os.getpid())
    return f"{constants.APP_NAME}-{suffix}"
