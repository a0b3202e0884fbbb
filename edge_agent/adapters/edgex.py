"""HTTP client for the EdgeX system management agent."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Sequence

import aiohttp

LOGGER = logging.getLogger(__name__)


class EdgeXError(RuntimeError):
    """Raised when an EdgeX request fails."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class EdgeXClient:
    """Calls the EdgeX system management API and returns raw response bodies.

    ``base_url`` points at the versioned API root, e.g.
    ``http://localhost:48090/api/v1/``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def push_operation(self, args: Sequence[str]) -> str:
        """Start, stop or restart EdgeX services.

        ``args[0]`` is the action, the remaining entries name the services.
        """

        if not args:
            raise EdgeXError("Operation requires an action")
        body = {"action": args[0], "services": list(args[1:])}
        return await self._request("POST", "operation", json=body)

    async def fetch_config(self, args: Sequence[str]) -> str:
        return await self._request("GET", f"config/{','.join(args)}")

    async def fetch_metrics(self, args: Sequence[str]) -> str:
        return await self._request("GET", f"metrics/{','.join(args)}")

    async def ping(self) -> str:
        return await self._request("GET", "ping")

    async def aclose(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> str:
        session = self._ensure_session()
        url = f"{self._base_url}{path}"
        LOGGER.debug("EdgeX %s %s", method, url)
        try:
            async with session.request(method, url, **kwargs) as response:
                text = await response.text()
                if response.status >= 400:
                    raise EdgeXError(
                        f"EdgeX {method} {path} failed with HTTP {response.status}: {text}",
                        status=response.status,
                    )
                return text
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise EdgeXError(f"EdgeX {method} {path} failed: {exc}") from exc

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session
