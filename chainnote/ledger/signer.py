"""
Signer protocol and Symbol implementation — the secrets boundary.

The pipeline never sees private keys. It passes an unsigned
TransactionDescriptor and gets back a SignedTransaction: the hex payload
ready for announce plus the transaction hash.

Output contract:
    ``SignedTransaction.payload`` is always a clean upper-case hex string.
    Signing primitives that hand back a wrapped form (a dict with a
    ``payload`` key, or a JSON string such as ``{"payload": "..."}``)
    are unwrapped here, in :func:`normalize_signed_payload`, so callers
    never have to inspect the shape. Anything that is still not hex after
    unwrapping is a SigningError.

Determinism:
    Symbol signs with Ed25519, which is deterministic. The same key and
    the same descriptor always produce a byte-identical payload and hash.

Concrete implementations:
    - SymbolSigner (symbol-sdk-python)
    - FakeSigner (tests)
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from chainnote.config import NetworkProfile
from chainnote.errors import ConfigurationError, SigningError
from chainnote.ledger.tx import TransactionDescriptor

logger = logging.getLogger(__name__)

_HEX_RE = re.compile(r"^(?:[0-9A-Fa-f]{2})+$")
_HASH_RE = re.compile(r"^[0-9A-Fa-f]{64}$")
_PRIVATE_KEY_RE = re.compile(r"^[0-9A-Fa-f]{64}$")


@dataclass(frozen=True)
class SignedTransaction:
    """Result of signing a descriptor.

    Valid only for the exact descriptor it was produced from.

    Attributes:
        payload: Upper-case hex of the signed transaction, ready for
            PUT /transactions.
        hash: Transaction hash (64 upper-case hex chars). Safe to log.
    """

    payload: str
    hash: str


# =========================================================================
# Payload normalization
# =========================================================================


def normalize_signed_payload(raw: Any) -> str:
    """Turn whatever a signing primitive returned into clean hex.

    Accepted shapes:
        - ``"ABCD..."``: already hex.
        - ``{"payload": "ABCD..."}``: dict wrapper.
        - ``'{"payload": "ABCD..."}'``: JSON-string wrapper.
        - ``b"..."``: raw serialized transaction bytes.

    Returns:
        Upper-case hex string.

    Raises:
        SigningError: If the shape is unknown or the result is not hex.
    """
    if isinstance(raw, (bytes, bytearray)):
        if not raw:
            raise SigningError("signer returned empty bytes")
        return bytes(raw).hex().upper()

    if isinstance(raw, dict):
        raw = raw.get("payload")

    if isinstance(raw, str) and raw.lstrip().startswith("{"):
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise SigningError("signer returned malformed JSON payload") from exc
        if not isinstance(decoded, dict):
            raise SigningError("signer returned JSON that is not an object")
        raw = decoded.get("payload")

    if not isinstance(raw, str):
        raise SigningError(
            f"signer returned unsupported payload type: {type(raw).__name__}"
        )

    payload = raw.strip()
    if not _HEX_RE.match(payload):
        raise SigningError("signed payload is not a clean hex string")
    return payload.upper()


def normalize_hash(raw: Any) -> str:
    """Return the transaction hash as 64 upper-case hex chars."""
    value = str(raw).strip()
    if not _HASH_RE.match(value):
        raise SigningError("transaction hash is not 64 hex chars")
    return value.upper()


# =========================================================================
# Protocol
# =========================================================================


@runtime_checkable
class NoteSigner(Protocol):
    """Interface for transaction signing.

    Implementations manage key material internally. Only public values
    (address, public key) are exposed.
    """

    @property
    def address(self) -> str:
        """Address derived from the signing key."""
        ...

    @property
    def public_key(self) -> str:
        """Signer public key, hex (safe for logging)."""
        ...

    def sign(self, descriptor: TransactionDescriptor) -> SignedTransaction:
        """Sign a descriptor.

        Raises:
            SigningError: If signing fails or yields an unusable payload.
        """
        ...


# =========================================================================
# Symbol implementation
# =========================================================================


class SymbolSigner:
    """NoteSigner backed by symbol-sdk-python.

    Imports the SDK lazily so that the pure layers (encoder, builder,
    payload normalization) load without it.

    Args:
        private_key_hex: 64-char hex private key.
        network: Network profile the key signs for.

    Raises:
        ConfigurationError: If the private key is malformed.
    """

    def __init__(self, private_key_hex: str, network: NetworkProfile) -> None:
        from symbolchain.CryptoTypes import PrivateKey
        from symbolchain.facade.SymbolFacade import SymbolFacade

        key_hex = (private_key_hex or "").strip()
        if not _PRIVATE_KEY_RE.match(key_hex):
            raise ConfigurationError("SYMBOL_PRIVATE_KEY must be 64 hex chars")

        self._network = network
        self._facade = SymbolFacade(network.name)
        self._key_pair = SymbolFacade.KeyPair(PrivateKey(key_hex))
        self._address = str(
            self._facade.network.public_key_to_address(self._key_pair.public_key)
        )

    @property
    def address(self) -> str:
        return self._address

    @property
    def public_key(self) -> str:
        return str(self._key_pair.public_key)

    def sign(self, descriptor: TransactionDescriptor) -> SignedTransaction:
        if descriptor.network.name != self._network.name:
            raise SigningError(
                f"descriptor is for {descriptor.network.name}, "
                f"signer is for {self._network.name}"
            )
        try:
            raw_payload, raw_hash = self._sign_with_sdk(descriptor)
        except SigningError:
            raise
        except Exception as exc:
            logger.debug("sdk signing failed", exc_info=True)
            raise SigningError(f"signing failed: {type(exc).__name__}") from exc

        return SignedTransaction(
            payload=normalize_signed_payload(raw_payload),
            hash=normalize_hash(raw_hash),
        )

    def _sign_with_sdk(self, descriptor: TransactionDescriptor) -> tuple[Any, Any]:
        from symbolchain.sc import Amount

        deadline = self._facade.network.from_datetime(descriptor.deadline).timestamp
        transaction = self._facade.transaction_factory.create({
            "type": "transfer_transaction_v1",
            "signer_public_key": self._key_pair.public_key,
            "deadline": deadline,
            "recipient_address": descriptor.recipient_address,
            "mosaics": [
                {"mosaic_id": descriptor.mosaic_id, "amount": descriptor.amount},
            ],
            "message": descriptor.message,
        })
        transaction.fee = Amount(descriptor.fee_multiplier * transaction.size)

        signature = self._facade.sign_transaction(self._key_pair, transaction)
        # attach_signature returns the JSON string '{"payload": "..."}'
        json_payload = self._facade.transaction_factory.attach_signature(
            transaction, signature
        )
        tx_hash = self._facade.hash_transaction(transaction)
        return json_payload, tx_hash
