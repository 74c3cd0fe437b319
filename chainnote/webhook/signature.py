"""
LINE webhook signature verification.

LINE signs each delivery with base64(HMAC-SHA256(channel_secret, body))
in the ``X-Line-Signature`` header. The HMAC covers the exact bytes on
the wire: verify before parsing, never on a re-serialized body.
"""

from __future__ import annotations

import base64
import hashlib
import hmac

SIGNATURE_HEADER = "X-Line-Signature"


def compute_signature(body: bytes, secret: str) -> str:
    """Base64 HMAC-SHA256 of ``body`` under ``secret``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Check a delivery's signature header against its raw body.

    Returns False (never raises) for a missing, empty or non-ASCII header,
    or an empty secret.
    """
    if not signature or not isinstance(signature, str) or not secret:
        return False
    try:
        provided = signature.strip().encode("ascii")
    except UnicodeEncodeError:
        return False
    expected = compute_signature(bytes(body), secret).encode("ascii")
    return hmac.compare_digest(expected, provided)
