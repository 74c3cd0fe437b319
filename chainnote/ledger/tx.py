"""
Symbol transfer builder for note anchoring.

Builds an unsigned, SDK-agnostic transfer descriptor from message bytes.
This is the "transaction recipe": pure, deterministic given ``now``,
no secrets, no network calls. Fee and signature are signer concerns.

The builder enforces:
    - Exactly one mosaic attachment, the network's currency, amount 0
    - Non-empty recipient and message
    - Message within the ledger's message cap
    - Deadline strictly in the future and within the network's maximum
      transaction lifetime
    - Positive fee multiplier
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from chainnote.config import LEDGER_MESSAGE_CAP, NetworkProfile

# Longest deadline a Symbol node accepts for an unconfirmed transaction.
MAX_DEADLINE_HORIZON = timedelta(hours=6)

# Shortest deadline we will build; anything less is already stale on arrival.
MIN_DEADLINE_HORIZON = timedelta(seconds=1)

DEFAULT_DEADLINE_HORIZON = timedelta(hours=2)

DEFAULT_FEE_MULTIPLIER = 100


@dataclass(frozen=True)
class TransactionDescriptor:
    """Unsigned transfer carrying a note.

    Attributes:
        network: Network the transfer is built for.
        recipient_address: Base32 address receiving the transfer.
        mosaic_id: Currency mosaic attached at zero amount.
        amount: Always 0 (data-carrier transfer, not a value transfer).
        message: Full message bytes, marker byte included.
        deadline: Aware UTC datetime after which the network drops it.
        fee_multiplier: Fee per byte of serialized transaction.
    """

    network: NetworkProfile
    recipient_address: str
    mosaic_id: int
    amount: int
    message: bytes
    deadline: datetime
    fee_multiplier: int


def clip_deadline_horizon(horizon: timedelta) -> timedelta:
    """Clamp a horizon into [MIN_DEADLINE_HORIZON, MAX_DEADLINE_HORIZON]."""
    return max(MIN_DEADLINE_HORIZON, min(horizon, MAX_DEADLINE_HORIZON))


def build_transfer(
    recipient_address: str,
    message: bytes,
    network: NetworkProfile,
    *,
    deadline_horizon: timedelta = DEFAULT_DEADLINE_HORIZON,
    fee_multiplier: int = DEFAULT_FEE_MULTIPLIER,
    now: datetime | None = None,
) -> TransactionDescriptor:
    """Build an unsigned zero-amount transfer carrying ``message``.

    Args:
        recipient_address: Destination address (the signer's own address
            for self-anchoring, or a configured fixed address).
        message: Encoded message bytes (from encode_message).
        network: Resolved network profile.
        deadline_horizon: Requested validity window; clipped.
        fee_multiplier: Fee multiplier applied at signing time.
        now: Current time. Defaults to the wall clock.

    Returns:
        TransactionDescriptor ready for a NoteSigner.

    Raises:
        ValueError: If recipient or message is empty, the message is over
            the cap, or fee_multiplier is not positive.
    """
    if not recipient_address:
        raise ValueError("recipient_address must be non-empty")
    if not message:
        raise ValueError("message must be non-empty")
    if len(message) > LEDGER_MESSAGE_CAP:
        raise ValueError(
            f"message exceeds {LEDGER_MESSAGE_CAP} bytes (got {len(message)} bytes)"
        )
    if fee_multiplier <= 0:
        raise ValueError(f"fee_multiplier must be positive, got: {fee_multiplier!r}")

    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    return TransactionDescriptor(
        network=network,
        recipient_address=recipient_address,
        mosaic_id=network.currency_mosaic_id,
        amount=0,
        message=message,
        deadline=now + clip_deadline_horizon(deadline_horizon),
        fee_multiplier=fee_multiplier,
    )
