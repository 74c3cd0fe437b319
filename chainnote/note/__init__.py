"""Note payloads: byte-budget encoding and pending locations."""

from chainnote.note.location import Location, LocationStore
from chainnote.note.memo import (
    MAX_USER_ID_CHARS,
    NOTE_SCHEMA,
    NOTE_TYPE,
    NOTE_VERSION,
    PLAIN_MESSAGE_MARKER,
    NotePayload,
    decode_message,
    encode_message,
    fit_note,
    serialize_note,
    validate_note,
)

__all__ = [
    "Location",
    "LocationStore",
    "MAX_USER_ID_CHARS",
    "NOTE_SCHEMA",
    "NOTE_TYPE",
    "NOTE_VERSION",
    "NotePayload",
    "PLAIN_MESSAGE_MARKER",
    "decode_message",
    "encode_message",
    "fit_note",
    "serialize_note",
    "validate_note",
]
