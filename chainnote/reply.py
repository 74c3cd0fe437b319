"""
Replies to the originating chat thread.

Maps a pipeline outcome to the text the user sees and delivers it through
the LINE reply API, keyed by the event's reply token.

Diagnostics are bounded (MAX_DIAGNOSTIC_CHARS) and never carry secret
material: configured secrets are masked, and exceptions that are not
ChainNoteError only contribute their type name.

Delivery is best-effort. A failed reply is logged and dropped; it is
never retried and never raised to the pipeline.
"""

from __future__ import annotations

import logging
from typing import Iterable

import httpx

from chainnote.config import LINE_REPLY_ENDPOINT, NetworkProfile
from chainnote.errors import ChainNoteError
from chainnote.note.location import Location

logger = logging.getLogger(__name__)

MAX_DIAGNOSTIC_CHARS = 160

# LINE rejects text messages longer than this.
MAX_REPLY_CHARS = 5000

_REDACTED = "***"

_ERROR_LABELS: dict[str, str] = {
    "ENCODING": "Could not encode the note",
    "SIGNING": "Could not sign the transaction",
    "REJECTED": "The node rejected the transaction",
    "TRANSPORT_FAILURE": "Could not reach the node, outcome unknown",
    "TIMEOUT": "The node did not answer in time, outcome unknown",
    "CONFIGURATION": "Service is not configured",
}

EMPTY_NOTE_PROMPT = "\U0001F4DD Please write something after the note marker."
LOCATION_SAVED = (
    "\U0001F4CD Location saved. Send a \U0001F4DD note next and it will be "
    "recorded with this location."
)


def viewer_url(network: NetworkProfile, tx_hash: str) -> str:
    """Explorer link for a transaction hash."""
    return network.explorer_url(tx_hash)


def success_message(url: str, location: Location | None = None) -> str:
    lines = ["\U0001F4DD Recorded on the blockchain"]
    if location is not None:
        lines.append(f"\U0001F4CD lat:{location.lat}, lon:{location.lon}")
    lines.append(f"\U0001F517 {url}")
    return "\n".join(lines)


def _redact(text: str, secrets: Iterable[str]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, _REDACTED)
    return text


def diagnostic_message(
    error: BaseException,
    secrets: Iterable[str] = (),
    limit: int = MAX_DIAGNOSTIC_CHARS,
) -> str:
    """User-facing failure text, at most ``limit`` characters."""
    if isinstance(error, ChainNoteError):
        label = _ERROR_LABELS.get(error.error_code, "Failed to record the note")
        detail = _redact(error.message, secrets)
    else:
        label = "Failed to record the note"
        detail = type(error).__name__
    text = f"⚠️ {label}: {detail}" if detail else f"⚠️ {label}"
    if len(text) > limit:
        text = text[: limit - 1] + "…"
    return text


class ReplyClient:
    """LINE reply API client.

    Args:
        access_token: Channel access token (bearer).
        endpoint: Reply API URL.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        access_token: str,
        endpoint: str = LINE_REPLY_ENDPOINT,
        timeout: float = 5.0,
    ) -> None:
        self._access_token = access_token
        self._endpoint = endpoint
        self._timeout = timeout

    async def reply(self, reply_token: str | None, text: str) -> bool:
        """Send one text reply. Returns True if LINE accepted it.

        Never raises for delivery failures.
        """
        if not reply_token:
            logger.warning("no reply token; dropping reply")
            return False
        body = {
            "replyToken": reply_token,
            "messages": [{"type": "text", "text": text[:MAX_REPLY_CHARS]}],
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    self._endpoint,
                    json=body,
                    headers={
                        "Content-Type": "application/json",
                        "Authorization": f"Bearer {self._access_token}",
                    },
                )
        except httpx.HTTPError as exc:
            logger.warning("reply delivery failed: %s", type(exc).__name__)
            return False

        if response.status_code >= 400:
            logger.warning(
                "reply rejected: HTTP %s %s",
                response.status_code,
                response.text[:200],
            )
            return False
        return True
