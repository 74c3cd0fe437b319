"""
Transport protocol for announce calls.

Defines the seam where the concrete HTTP implementation plugs in. The
Announcer depends on this protocol, not on httpx directly, so tests can
swap in a fake without touching classification logic.

Concrete implementations:
    - HttpxTransport (default, uses httpx.AsyncClient)
    - FakeTransport (tests, returns canned responses)

Transports do not interpret the response. Status code and body text are
handed back verbatim; transport-level failures (DNS, connect, TLS,
timeout) propagate as exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import httpx


@dataclass(frozen=True)
class TransportResponse:
    """Raw HTTP answer from the node."""

    status_code: int
    text: str


@runtime_checkable
class AnnounceTransport(Protocol):
    """Async transport for JSON PUT requests."""

    async def put_json(self, url: str, body: dict[str, Any]) -> TransportResponse:
        """Send ``body`` as JSON with PUT and return the raw response.

        Raises:
            httpx.TimeoutException: The request timed out.
            httpx.TransportError: Connection-level failure.
        """
        ...


class HttpxTransport:
    """Default transport using httpx.AsyncClient.

    A fresh client per call: announces are rare and independent, and the
    ``async with`` guarantees the connection is released when the caller
    cancels the request.
    """

    def __init__(self, timeout: float = 8.0) -> None:
        self._timeout = timeout

    async def put_json(self, url: str, body: dict[str, Any]) -> TransportResponse:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.put(
                url,
                json=body,
                headers={"Content-Type": "application/json"},
            )
            return TransportResponse(
                status_code=response.status_code,
                text=response.text,
            )
