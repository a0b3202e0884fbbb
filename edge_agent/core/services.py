"""Registry of local services discovered through heartbeats.

Services announce themselves by publishing on ``heartbeat.<name>``. The
registry keeps one entry per name for the lifetime of the process; entries
are never evicted, only touched.

Heartbeats arrive from the NATS subscription while ``view`` requests arrive
from the MQTT command path, so every access to the map goes through a lock.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

LOGGER = logging.getLogger(__name__)

ONLINE = "online"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Service:
    """Last known liveness state of a local service."""

    name: str
    status: str = ONLINE
    last_seen: datetime = field(default_factory=_utcnow)
    heartbeats: int = 0

    def update(self, now: Optional[datetime] = None) -> None:
        self.status = ONLINE
        self.last_seen = now or _utcnow()
        self.heartbeats += 1

    def as_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "status": self.status,
            "last_seen": self.last_seen.isoformat(timespec="seconds"),
            "heartbeats": self.heartbeats,
        }


class ServiceRegistry:
    """Thread-safe mapping from service name to :class:`Service`."""

    def __init__(self, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or _utcnow
        self._services: Dict[str, Service] = {}
        self._lock = threading.Lock()

    def register_or_touch(self, name: str) -> bool:
        """Record a heartbeat for ``name``.

        Returns True when the service was seen for the first time.
        """

        now = self._clock()
        with self._lock:
            service = self._services.get(name)
            created = service is None
            if service is None:
                service = Service(name=name, last_seen=now)
                self._services[name] = service
            service.update(now)

        if created:
            LOGGER.info("Service '%s' registered", name)
        return created

    def snapshot(self) -> Dict[str, Service]:
        """Return a shallow copy of the current name to service mapping."""

        with self._lock:
            return dict(self._services)

    def get(self, name: str) -> Optional[Service]:
        with self._lock:
            return self._services.get(name)

    def as_dict(self) -> Dict[str, Dict[str, object]]:
        with self._lock:
            return {name: service.as_dict() for name, service in self._services.items()}

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._services

    def __len__(self) -> int:
        with self._lock:
            return len(self._services)
