"""
Error taxonomy for the note pipeline.

Every failure that can end a message's processing has its own exception
type. Each carries a machine-readable ``error_code`` and an optional
``details`` dict for structured logs. ``details`` must never contain key
material or tokens.

Propagation:
    - ConfigurationError: fatal for the request (HTTP 500), nothing runs.
    - AuthenticationError: request rejected before parsing (HTTP 403).
    - EncodingError, SigningError: abort the current message only.
    - RejectionError: node refused the transaction, reason kept.
    - AnnounceTransportError, AnnounceTimeoutError: outcome unknown,
      the transaction may or may not have reached the network.
"""

from __future__ import annotations

from typing import Any


class ChainNoteError(Exception):
    """Base class for all pipeline errors.

    Args:
        message: Human-readable description (safe to show to users).
        error_code: Stable machine-readable category.
        details: Optional structured context for logs.
    """

    default_code = "CHAINNOTE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}


class ConfigurationError(ChainNoteError):
    """Required configuration is missing or invalid."""

    default_code = "CONFIGURATION"


class AuthenticationError(ChainNoteError):
    """Inbound request signature did not verify."""

    default_code = "AUTHENTICATION"


class EncodingError(ChainNoteError):
    """Note cannot be encoded within the byte budget."""

    default_code = "ENCODING"


class SigningError(ChainNoteError):
    """Signer failed or produced a payload that is not clean hex."""

    default_code = "SIGNING"


class RejectionError(ChainNoteError):
    """Node answered but did not accept the transaction."""

    default_code = "REJECTED"


class AnnounceTransportError(ChainNoteError):
    """Announce never got an answer from the node (DNS, connect, TLS)."""

    default_code = "TRANSPORT_FAILURE"


class AnnounceTimeoutError(ChainNoteError):
    """Announce exceeded its time bound and was cancelled."""

    default_code = "TIMEOUT"
