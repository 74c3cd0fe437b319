"""
Inbound LINE webhook events.

Only the fields the pipeline uses are kept. Events that cannot be read
are skipped (and logged) rather than failing the whole batch.

Body shape:
    {"events": [{"type": "message",
                 "replyToken": "...",
                 "source": {"userId": "U..."},
                 "message": {"type": "text", "text": "note: ..."}}]}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

NOTE_EMOJI = "\U0001F4DD"  # 📝
NOTE_PREFIX = "note:"

UNKNOWN_USER = "unknown"


@dataclass(frozen=True)
class InboundEvent:
    """One webhook event, reduced to what the pipeline needs."""

    type: str
    reply_token: str | None
    user_id: str
    message_type: str | None = None
    text: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None

    @property
    def is_text(self) -> bool:
        return self.type == "message" and self.message_type == "text" and self.text is not None

    @property
    def is_location(self) -> bool:
        return (
            self.type == "message"
            and self.message_type == "location"
            and self.latitude is not None
            and self.longitude is not None
        )


def extract_note_text(text: str) -> str | None:
    """Return the note body if ``text`` is a note command, else None.

    A note starts with the 📝 marker or ``note:`` (any case). The marker
    is removed and the rest trimmed, so the result may be empty.
    """
    stripped = text.strip()
    if not (stripped.startswith(NOTE_EMOJI) or stripped.lower().startswith(NOTE_PREFIX)):
        return None
    if stripped.startswith(NOTE_EMOJI):
        stripped = stripped[len(NOTE_EMOJI):].lstrip()
    if stripped.lower().startswith(NOTE_PREFIX):
        stripped = stripped[len(NOTE_PREFIX):]
    return stripped.strip()


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def parse_event(raw: Any) -> InboundEvent | None:
    """Parse one event dict. Returns None if it is not an object."""
    if not isinstance(raw, dict):
        return None
    source = raw.get("source") if isinstance(raw.get("source"), dict) else {}
    message = raw.get("message") if isinstance(raw.get("message"), dict) else {}
    text = message.get("text")
    address = message.get("address")
    user_id = source.get("userId")
    reply_token = raw.get("replyToken")
    return InboundEvent(
        type=str(raw.get("type", "")),
        reply_token=reply_token if isinstance(reply_token, str) else None,
        user_id=user_id if isinstance(user_id, str) and user_id else UNKNOWN_USER,
        message_type=message.get("type") if isinstance(message.get("type"), str) else None,
        text=text if isinstance(text, str) else None,
        latitude=_as_float(message.get("latitude")),
        longitude=_as_float(message.get("longitude")),
        address=address if isinstance(address, str) else None,
    )


def parse_events(body: Any) -> list[InboundEvent]:
    """Parse a webhook body into events, skipping unreadable entries."""
    if not isinstance(body, dict):
        logger.warning("webhook body is not a JSON object")
        return []
    raw_events = body.get("events") or []
    if not isinstance(raw_events, list):
        logger.warning("webhook 'events' is not a list")
        return []
    events: list[InboundEvent] = []
    for index, raw in enumerate(raw_events):
        event = parse_event(raw)
        if event is None:
            logger.warning("skipping unreadable webhook event #%d", index)
            continue
        events.append(event)
    return events
