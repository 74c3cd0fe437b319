"""Inbound LINE webhook: signature check and event parsing."""

from chainnote.webhook.events import (
    InboundEvent,
    extract_note_text,
    parse_event,
    parse_events,
)
from chainnote.webhook.signature import (
    SIGNATURE_HEADER,
    compute_signature,
    verify_signature,
)

__all__ = [
    "InboundEvent",
    "SIGNATURE_HEADER",
    "compute_signature",
    "extract_note_text",
    "parse_event",
    "parse_events",
    "verify_signature",
]
