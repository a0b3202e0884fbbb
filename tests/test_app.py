"""Tests for application wiring and lifecycle."""

import asyncio
import json
from types import SimpleNamespace

import pytest

from edge_agent.adapters import MQTTClient, NATSConnectionError
from edge_agent.app import AgentStartupError, AgentState, EdgeAgentApp
from edge_agent.config import load_config
from edge_agent.senml import decode_senml


class FakeMQTT:
    def __init__(self) -> None:
        self.connected = False
        self.handler = None
        self.subscriptions: list[str] = []
        self.published: list[tuple[str, bytes]] = []
        self.disconnect_handlers = []

    async def connect(self) -> None:
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    def register_disconnect_handler(self, handler) -> None:
        self.disconnect_handlers.append(handler)

    def set_message_handler(self, handler) -> None:
        self.handler = handler

    def subscribe(self, topic: str, qos: int = 0) -> None:
        self.subscriptions.append(topic)

    def publish(self, topic: str, payload: bytes, qos: int = 0, retain: bool = False):
        self.published.append((topic, payload))

    async def emit(self, topic: str, payload: bytes) -> None:
        result = self.handler(topic, payload)
        if hasattr(result, "__await__"):
            await result


class FakeSubscription:
    async def unsubscribe(self) -> None:
        return None


class FakeNATS:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.connected = False
        self.closed = False
        self.handlers: dict = {}
        self.published: list[tuple[str, bytes]] = []

    async def connect(self) -> None:
        if self.fail:
            raise NATSConnectionError("Failed to connect to NATS")
        self.connected = True

    async def close(self) -> None:
        self.closed = True

    async def subscribe(self, subject, handler):
        self.handlers[subject] = handler
        return FakeSubscription()

    async def publish(self, subject: str, payload: bytes = b"") -> None:
        self.published.append((subject, payload))

    async def deliver(self, subject: str) -> None:
        await self.handlers["heartbeat.*"](SimpleNamespace(subject=subject, data=b""))


class FakeEdgeX:
    def __init__(self) -> None:
        self.closed = False

    async def ping(self) -> str:
        return "pong"

    async def aclose(self) -> None:
        self.closed = True


async def _wait_for_state(app: EdgeAgentApp, state: AgentState) -> None:
    for _ in range(100):
        if app.state is state:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"app never reached {state}")


@pytest.mark.asyncio
async def test_app_routes_commands_and_heartbeats(agent_config):
    mqtt, nats, edgex = FakeMQTT(), FakeNATS(), FakeEdgeX()
    app = EdgeAgentApp(agent_config, mqtt_client=mqtt, nats_client=nats, edgex_client=edgex)

    task = asyncio.create_task(app.run())
    await _wait_for_state(app, AgentState.ACTIVE)

    assert mqtt.subscriptions == ["channels/ctrl-chan/messages/req"]
    await nats.deliver("heartbeat.export")

    request = json.dumps([{"bn": "req-1:", "n": "config", "vs": "view"}]).encode()
    await mqtt.emit("channels/ctrl-chan/messages/req", request)
    request = json.dumps([{"bn": "req-2:", "n": "control", "vs": "edgex-ping"}]).encode()
    await mqtt.emit("channels/ctrl-chan/messages/req", request)

    app.request_shutdown()
    await asyncio.wait_for(task, timeout=1.0)

    topics = {topic for topic, _ in mqtt.published}
    assert topics == {"channels/ctrl-chan/messages/res"}
    view, ping = (decode_senml(payload)[0] for _, payload in mqtt.published)
    assert view.base_name == "req-1"
    assert list(json.loads(view.string_value)) == ["export"]
    assert (ping.name, ping.string_value) == ("edgex-ping", "pong")

    assert app.state is AgentState.STOPPING
    assert not mqtt.connected
    assert nats.closed
    assert edgex.closed


@pytest.mark.asyncio
async def test_app_fails_to_start_without_nats(agent_config):
    mqtt, nats, edgex = FakeMQTT(), FakeNATS(fail=True), FakeEdgeX()
    app = EdgeAgentApp(agent_config, mqtt_client=mqtt, nats_client=nats, edgex_client=edgex)

    with pytest.raises(AgentStartupError):
        await app.run()

    assert not mqtt.connected
    assert mqtt.handler is None


@pytest.mark.asyncio
async def test_app_requires_control_channel(tmp_path):
    config = load_config(tmp_path / "empty.cfg")
    nats = FakeNATS()
    app = EdgeAgentApp(config, mqtt_client=FakeMQTT(), nats_client=nats, edgex_client=FakeEdgeX())

    with pytest.raises(AgentStartupError):
        await app.run()

    assert not nats.connected


class RefusingPahoClient:
    """paho-mqtt stand-in whose broker refuses the connection."""

    def __init__(self, loop: asyncio.AbstractEventLoop, calls: list, **kwargs) -> None:
        self._loop = loop
        self._calls = calls
        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None

    def enable_logger(self, logger=None) -> None:
        return None

    def username_pw_set(self, username, password=None) -> None:
        return None

    def connect_async(self, host, port, keepalive) -> None:
        self._loop.call_soon(self.on_connect, self, None, None, 5, None)

    def loop_start(self) -> None:
        self._calls.append("loop_start")

    def loop_stop(self) -> None:
        self._calls.append("loop_stop")

    def disconnect(self) -> None:
        self._calls.append("disconnect")


@pytest.mark.asyncio
async def test_app_reports_startup_error_when_broker_refuses(agent_config, monkeypatch):
    loop = asyncio.get_running_loop()
    calls: list = []
    monkeypatch.setattr(
        "edge_agent.adapters.mqtt.mqtt.Client",
        lambda *args, **kwargs: RefusingPahoClient(loop, calls, **kwargs),
    )
    mqtt = MQTTClient(agent_config.mqtt, client_id="edge-agent-test")
    nats, edgex = FakeNATS(), FakeEdgeX()
    app = EdgeAgentApp(agent_config, mqtt_client=mqtt, nats_client=nats, edgex_client=edgex)

    with pytest.raises(AgentStartupError, match="rc=5"):
        await asyncio.wait_for(app.run(), timeout=2.0)

    assert "disconnect" not in calls
    assert calls.count("loop_stop") == 1
    assert nats.closed
    assert edgex.closed
