"""
Announce a signed transaction to a Symbol node and classify the outcome.

Sends ``PUT {node_url}/transactions`` with ``{"payload": HEX}`` under a
hard time bound. The outcome is returned as a value, never raised:

    | condition                                   | status            |
    |---------------------------------------------|-------------------|
    | 2xx and message matches "pushed" (any case) | ACCEPTED          |
    | 2xx, anything else                          | REJECTED(reason)  |
    | non-2xx                                     | REJECTED(reason)  |
    | DNS / connect / TLS / protocol error        | TRANSPORT_FAILURE |
    | time bound elapsed                          | TIMEOUT           |

TIMEOUT and TRANSPORT_FAILURE mean the transaction's fate is unknown,
not that it was refused. No retries here: a blind resubmit of an
already-pushed transaction is worse than an unknown outcome.

The time bound is enforced with ``asyncio.wait_for`` on top of the
transport's own timeout, so the in-flight request is cancelled and its
connection released once the bound elapses.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from enum import StrEnum

import httpx

from chainnote.errors import (
    AnnounceTimeoutError,
    AnnounceTransportError,
    ChainNoteError,
    RejectionError,
)
from chainnote.ledger.signer import SignedTransaction
from chainnote.ledger.transport import AnnounceTransport, HttpxTransport

logger = logging.getLogger(__name__)

DEFAULT_ANNOUNCE_TIMEOUT = 8.0

_PUSHED_RE = re.compile(r"pushed", re.IGNORECASE)

# Node messages can be long; keep reasons short enough for a chat reply.
_MAX_REASON_CHARS = 200


class AnnounceStatus(StrEnum):
    """Classification of an announce attempt."""

    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    TRANSPORT_FAILURE = "TRANSPORT_FAILURE"
    TIMEOUT = "TIMEOUT"


@dataclass(frozen=True)
class AnnounceResult:
    """Outcome of one announce attempt.

    Attributes:
        status: Classification.
        reason: Node message (REJECTED) or failure detail. None on success.
        status_code: HTTP status, when the node answered at all.
    """

    status: AnnounceStatus
    reason: str | None = None
    status_code: int | None = None

    @property
    def accepted(self) -> bool:
        return self.status is AnnounceStatus.ACCEPTED

    def to_error(self) -> ChainNoteError | None:
        """Exception describing a non-accepted outcome (None if accepted)."""
        details = {"status_code": self.status_code} if self.status_code else None
        if self.status is AnnounceStatus.REJECTED:
            return RejectionError(self.reason or "rejected", details=details)
        if self.status is AnnounceStatus.TRANSPORT_FAILURE:
            return AnnounceTransportError(self.reason or "node unreachable")
        if self.status is AnnounceStatus.TIMEOUT:
            return AnnounceTimeoutError(self.reason or "announce timed out")
        return None


# =========================================================================
# Response classification (pure)
# =========================================================================


def _extract_message(text: str) -> str:
    """Pull ``message`` out of a JSON body, falling back to the raw text."""
    try:
        body = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return text.strip()
    if isinstance(body, dict):
        message = body.get("message")
        if message is not None:
            return str(message)
        code = body.get("code")
        if code is not None:
            return str(code)
    return text.strip()


def classify_response(status_code: int, text: str) -> AnnounceResult:
    """Classify a node answer to PUT /transactions."""
    message = _extract_message(text)[:_MAX_REASON_CHARS]
    if 200 <= status_code < 300:
        if _PUSHED_RE.search(message):
            return AnnounceResult(AnnounceStatus.ACCEPTED, status_code=status_code)
        return AnnounceResult(
            AnnounceStatus.REJECTED,
            reason=message or "node did not confirm the push",
            status_code=status_code,
        )
    return AnnounceResult(
        AnnounceStatus.REJECTED,
        reason=f"HTTP {status_code}: {message}" if message else f"HTTP {status_code}",
        status_code=status_code,
    )


# =========================================================================
# Announcer
# =========================================================================


class Announcer:
    """Submits signed transactions to one node.

    Args:
        node_url: Node REST base URL (e.g. "https://node:3001").
        transport: Injectable transport. Defaults to HttpxTransport
            with the same timeout.
        timeout: Hard bound in seconds for one announce.
    """

    def __init__(
        self,
        node_url: str,
        transport: AnnounceTransport | None = None,
        timeout: float = DEFAULT_ANNOUNCE_TIMEOUT,
    ) -> None:
        if not node_url:
            raise ValueError("node_url must be non-empty")
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self._node_url = node_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport or HttpxTransport(timeout=timeout)

    @property
    def url(self) -> str:
        return f"{self._node_url}/transactions"

    async def announce(self, signed: SignedTransaction) -> AnnounceResult:
        """Announce once and classify. Never raises for network outcomes."""
        try:
            response = await asyncio.wait_for(
                self._transport.put_json(self.url, {"payload": signed.payload}),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("announce of %s timed out after %ss", signed.hash, self._timeout)
            return AnnounceResult(
                AnnounceStatus.TIMEOUT,
                reason=f"no answer within {self._timeout:g}s",
            )
        except (httpx.HTTPError, OSError) as exc:
            logger.warning("announce of %s failed: %s", signed.hash, type(exc).__name__)
            return AnnounceResult(
                AnnounceStatus.TRANSPORT_FAILURE,
                reason=f"{type(exc).__name__}: {exc}"[:_MAX_REASON_CHARS],
            )

        result = classify_response(response.status_code, response.text)
        logger.info(
            "announce of %s -> %s (HTTP %s)",
            signed.hash,
            result.status,
            response.status_code,
        )
        return result
