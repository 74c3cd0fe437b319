"""
On-ledger note format v1 and its byte-budget encoder.

A note is the JSON object a user asked to record. It travels inside a
Symbol transfer message, which has a hard size cap, so the encoder may
shorten the free-text field until the serialized note fits.

Format (chainnote.note v1):
    {
      "v":         "1",
      "t":         "note",
      "userId":    "U4af4980629...",   // max 64 chars
      "text":      "free text",        // possibly shortened
      "timestamp": 1735689600,         // unix seconds
      "lat":       35.6812,            // optional
      "lon":       139.7671,           // optional
      "address":   "Tokyo Station"     // optional, max 200 chars
    }

Rules:
    - Canonical JSON (sorted keys, no whitespace, raw UTF-8).
    - None-valued optional fields excluded (not set to null).
    - Only ``text`` is ever shortened; every other field is kept intact.
    - Shortening cuts on code point boundaries, never inside a UTF-8
      sequence or an escape sequence.
    - Output always validates against NOTE_SCHEMA.

Wire form:
    message = PLAIN_MESSAGE_MARKER + note_bytes
    The marker byte 0x00 tells explorers and wallets the message is
    plain (unencrypted) content.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from typing import Any

import jsonschema  # type: ignore[import-untyped]

from chainnote.config import DEFAULT_MESSAGE_MAX_BYTES, LEDGER_MESSAGE_CAP
from chainnote.errors import EncodingError

# Note schema version. Bump when the payload shape changes.
NOTE_VERSION = "1"

# Note type identifier.
NOTE_TYPE = "note"

# First byte of a plain (unencrypted) Symbol message.
PLAIN_MESSAGE_MARKER = b"\x00"

MAX_USER_ID_CHARS = 64
MAX_ADDRESS_CHARS = 200

NOTE_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["v", "t", "userId", "text", "timestamp"],
    "additionalProperties": False,
    "properties": {
        "v": {"const": NOTE_VERSION},
        "t": {"const": NOTE_TYPE},
        "userId": {"type": "string", "minLength": 1, "maxLength": MAX_USER_ID_CHARS},
        "text": {"type": "string"},
        "timestamp": {"type": "integer", "minimum": 0},
        "lat": {"type": "number", "minimum": -90, "maximum": 90},
        "lon": {"type": "number", "minimum": -180, "maximum": 180},
        "address": {"type": "string", "maxLength": MAX_ADDRESS_CHARS},
    },
}

_VALIDATOR = jsonschema.Draft202012Validator(NOTE_SCHEMA)


# =========================================================================
# NotePayload
# =========================================================================


@dataclass(frozen=True)
class NotePayload:
    """What the user wants recorded.

    ``user_id`` and ``address`` are clipped to their maximum lengths on
    construction; ``text`` is left whole (the encoder owns shortening).
    """

    user_id: str
    text: str
    timestamp: int
    lat: float | None = None
    lon: float | None = None
    address: str | None = None

    def __post_init__(self) -> None:
        if not self.user_id:
            raise ValueError("user_id must be non-empty")
        if len(self.user_id) > MAX_USER_ID_CHARS:
            object.__setattr__(self, "user_id", self.user_id[:MAX_USER_ID_CHARS])
        if self.address is not None and len(self.address) > MAX_ADDRESS_CHARS:
            object.__setattr__(self, "address", self.address[:MAX_ADDRESS_CHARS])

    def to_dict(self) -> dict[str, object]:
        d: dict[str, object] = {
            "v": NOTE_VERSION,
            "t": NOTE_TYPE,
            "userId": self.user_id,
            "text": self.text,
            "timestamp": self.timestamp,
        }
        if self.lat is not None:
            d["lat"] = self.lat
        if self.lon is not None:
            d["lon"] = self.lon
        if self.address is not None:
            d["address"] = self.address
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NotePayload:
        return cls(
            user_id=data["userId"],
            text=data["text"],
            timestamp=data["timestamp"],
            lat=data.get("lat"),
            lon=data.get("lon"),
            address=data.get("address"),
        )


# =========================================================================
# Serialization
# =========================================================================


def serialize_note(payload: NotePayload) -> bytes:
    """Serialize a note to canonical JSON bytes (no size check).

    Sorted keys and compact separators make the bytes a function of the
    payload alone, so the byte budget check in fit_note is reproducible.
    Non-ASCII text stays raw UTF-8: readable on the explorer, and each
    added code point grows the output by a fixed positive amount.
    """
    try:
        text = json.dumps(
            payload.to_dict(),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
        return text.encode("utf-8")
    except ValueError as exc:
        # NaN / Infinity coordinates
        raise EncodingError(f"note is not serializable: {exc}") from exc


def validate_note(note: dict[str, Any]) -> None:
    """Raise EncodingError if ``note`` does not match NOTE_SCHEMA."""
    error = jsonschema.exceptions.best_match(_VALIDATOR.iter_errors(note))
    if error is not None:
        raise EncodingError(
            f"note does not match schema: {error.message}",
            details={"path": list(error.absolute_path)},
        )


def fit_note(
    payload: NotePayload,
    max_bytes: int = DEFAULT_MESSAGE_MAX_BYTES,
) -> bytes:
    """Serialize a note so that it fits in ``max_bytes``.

    If the full note already fits it is returned unmodified. Otherwise the
    longest prefix of ``payload.text`` (counted in code points) whose
    serialized note fits is found by binary search. This is sound because
    the serialized size never shrinks as the prefix grows: each code point
    adds a fixed, positive number of bytes (its UTF-8 length or its JSON
    escape).

    Args:
        payload: The note to encode.
        max_bytes: Byte budget for the serialized JSON.

    Returns:
        Canonical JSON bytes, ``len(result) <= max_bytes``.

    Raises:
        EncodingError: If the note does not fit even with empty text,
            or if it fails schema validation.
    """
    if max_bytes < 1:
        raise EncodingError(f"max_bytes must be positive, got {max_bytes}")

    validate_note(payload.to_dict())

    full = serialize_note(payload)
    if len(full) <= max_bytes:
        return full

    empty = serialize_note(replace(payload, text=""))
    if len(empty) > max_bytes:
        raise EncodingError(
            f"note does not fit in {max_bytes} bytes even with empty text",
            details={"empty_size": len(empty), "max_bytes": max_bytes},
        )

    text = payload.text
    # Invariant: prefix of length `lo` fits, prefix of length `hi` does not.
    lo, hi = 0, len(text)
    while hi - lo > 1:
        mid = (lo + hi) // 2
        if len(serialize_note(replace(payload, text=text[:mid]))) <= max_bytes:
            lo = mid
        else:
            hi = mid

    return serialize_note(replace(payload, text=text[:lo]))


# =========================================================================
# Wire form
# =========================================================================


def encode_message(note_bytes: bytes) -> bytes:
    """Prefix note bytes with the plain-message marker.

    Raises:
        EncodingError: If the result would exceed the ledger's message cap.
    """
    message = PLAIN_MESSAGE_MARKER + note_bytes
    if len(message) > LEDGER_MESSAGE_CAP:
        raise EncodingError(
            f"message exceeds ledger cap of {LEDGER_MESSAGE_CAP} bytes "
            f"(got {len(message)} bytes)"
        )
    return message


def decode_message(message: bytes) -> dict[str, Any]:
    """Parse a plain message back into a validated note dict.

    Raises:
        EncodingError: If the marker is missing or the note is malformed.
    """
    if not message.startswith(PLAIN_MESSAGE_MARKER):
        raise EncodingError("message is not a plain message")
    try:
        note = json.loads(message[len(PLAIN_MESSAGE_MARKER):].decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise EncodingError(f"message is not a JSON note: {exc}") from exc
    if not isinstance(note, dict):
        raise EncodingError("message JSON is not an object")
    validate_note(note)
    return note
