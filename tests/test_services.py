import logging
import threading
from datetime import datetime, timedelta, timezone

from edge_agent.core.services import ONLINE, ServiceRegistry


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def test_repeated_heartbeats_keep_one_entry_per_name():
    registry = ServiceRegistry()

    registry.register_or_touch("alpha")
    registry.register_or_touch("beta")
    registry.register_or_touch("alpha")

    snapshot = registry.snapshot()
    assert sorted(snapshot) == ["alpha", "beta"]
    assert snapshot["alpha"].heartbeats == 2
    assert snapshot["beta"].heartbeats == 1


def test_register_reports_new_services_and_logs(caplog):
    registry = ServiceRegistry()

    with caplog.at_level(logging.INFO, logger="edge_agent.core.services"):
        assert registry.register_or_touch("export") is True
        assert registry.register_or_touch("export") is False

    registered = [r for r in caplog.records if "registered" in r.getMessage()]
    assert len(registered) == 1
    assert "export" in registered[0].getMessage()


def test_touch_updates_last_seen():
    clock = FakeClock()
    registry = ServiceRegistry(clock=clock)

    registry.register_or_touch("alpha")
    first_seen = registry.get("alpha").last_seen
    clock.advance(30)
    registry.register_or_touch("alpha")

    service = registry.get("alpha")
    assert service.last_seen == first_seen + timedelta(seconds=30)
    assert service.status == ONLINE


def test_snapshot_is_not_affected_by_later_heartbeats():
    registry = ServiceRegistry()
    registry.register_or_touch("alpha")

    snapshot = registry.snapshot()
    registry.register_or_touch("beta")

    assert list(snapshot) == ["alpha"]
    assert len(registry) == 2
    assert "beta" in registry


def test_as_dict_is_json_ready():
    clock = FakeClock()
    registry = ServiceRegistry(clock=clock)
    registry.register_or_touch("alpha")

    assert registry.as_dict() == {
        "alpha": {
            "name": "alpha",
            "status": "online",
            "last_seen": "2024-01-01T00:00:00+00:00",
            "heartbeats": 1,
        }
    }


def test_concurrent_heartbeats_and_snapshots():
    registry = ServiceRegistry()
    errors: list[BaseException] = []

    def beat(prefix: str) -> None:
        try:
            for index in range(200):
                registry.register_or_touch(f"{prefix}-{index % 20}")
        except BaseException as exc:  # pragma: no cover
            errors.append(exc)

    def read() -> None:
        try:
            for _ in range(200):
                for service in registry.snapshot().values():
                    assert service.name
        except BaseException as exc:  # pragma: no cover
            errors.append(exc)

    threads = [threading.Thread(target=beat, args=(p,)) for p in ("a", "b")]
    threads.append(threading.Thread(target=read))
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(registry) == 40
