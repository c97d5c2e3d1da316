"""
Heartbeat transport — posts the emitter's payload to the attendance API.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

HEARTBEAT_PATH = "/api/v1/attendance/heartbeat"

# Server answers these when there is no open session to attach a heartbeat to
_REJECTION_STATUSES = frozenset({400, 403, 409})


class HeartbeatRejected(Exception):
    """The server refused the heartbeat because its preconditions failed."""

    def __init__(self, status_code: int, code: str | None, detail: str) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.code = code
        self.detail = detail


class HeartbeatTransport(Protocol):
    async def send(self, payload: dict[str, Any]) -> dict[str, Any]: ...


class HttpHeartbeatTransport:
    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        path: str = HEARTBEAT_PATH,
    ) -> None:
        self.path = path
        self._token = token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def send(self, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._client.post(
            self.path,
            json=payload,
            headers={"Authorization": f"Bearer {self._token}"},
        )
        if response.status_code in _REJECTION_STATUSES:
            try:
                body = response.json()
            except ValueError:
                body = {}
            raise HeartbeatRejected(
                response.status_code,
                body.get("code"),
                body.get("detail") or response.text,
            )
        response.raise_for_status()
        return response.json()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
