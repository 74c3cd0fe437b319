"""
Symbol ledger backend for chainnote.

Public API:

    Pure layer (no I/O):
        - ``build_transfer()`` — zero-amount transfer carrying a message.
        - ``TransactionDescriptor`` — result type from ``build_transfer()``.
        - ``normalize_signed_payload()`` — unwrap signer output to clean hex.
        - ``classify_response()`` — node answer → AnnounceResult.

    Secrets boundary:
        - ``NoteSigner`` — protocol.
        - ``SymbolSigner`` — symbol-sdk-python implementation.
        - ``SignedTransaction`` — signer result type.

    Network boundary:
        - ``Announcer`` — timeout-bounded PUT /transactions.
        - ``AnnounceTransport`` / ``HttpxTransport`` — injectable HTTP seam.
        - ``AnnounceResult``, ``AnnounceStatus`` — classified outcome.
"""

from chainnote.ledger.announcer import (
    DEFAULT_ANNOUNCE_TIMEOUT,
    AnnounceResult,
    Announcer,
    AnnounceStatus,
    classify_response,
)
from chainnote.ledger.signer import (
    NoteSigner,
    SignedTransaction,
    SymbolSigner,
    normalize_hash,
    normalize_signed_payload,
)
from chainnote.ledger.transport import (
    AnnounceTransport,
    HttpxTransport,
    TransportResponse,
)
from chainnote.ledger.tx import (
    MAX_DEADLINE_HORIZON,
    TransactionDescriptor,
    build_transfer,
    clip_deadline_horizon,
)

__all__ = [
    "DEFAULT_ANNOUNCE_TIMEOUT",
    "MAX_DEADLINE_HORIZON",
    "AnnounceResult",
    "AnnounceStatus",
    "AnnounceTransport",
    "Announcer",
    "HttpxTransport",
    "NoteSigner",
    "SignedTransaction",
    "SymbolSigner",
    "TransactionDescriptor",
    "TransportResponse",
    "build_transfer",
    "classify_response",
    "clip_deadline_horizon",
    "normalize_hash",
    "normalize_signed_payload",
]
