"""
Message-to-transaction pipeline.

Per qualifying message:

    VERIFIED → ENCODED → BUILT → SIGNED → ANNOUNCED → ACKNOWLEDGED
        \\________\\________\\________\\________→ DIAGNOSED

The webhook boundary has already verified the delivery signature, so
every message enters at VERIFIED. A failure at any stage skips the rest
and goes straight to DIAGNOSED with that stage's error. Either way the
user gets exactly one reply: a viewer link or a bounded diagnostic.

Messages in one delivery are processed one after another, each isolated:
a failing message never stops its siblings. Separate deliveries may run
concurrently with the same signer; each transaction is self-contained
and ordering is left to the ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Callable, Iterable

from chainnote.config import DEFAULT_MESSAGE_MAX_BYTES, NetworkProfile, Settings
from chainnote.errors import ChainNoteError, EncodingError
from chainnote.ledger.announcer import Announcer
from chainnote.ledger.signer import NoteSigner, SymbolSigner
from chainnote.ledger.transport import AnnounceTransport
from chainnote.ledger.tx import (
    DEFAULT_DEADLINE_HORIZON,
    DEFAULT_FEE_MULTIPLIER,
    build_transfer,
)
from chainnote.note.location import Location, LocationStore
from chainnote.note.memo import NotePayload, encode_message, fit_note
from chainnote.reply import (
    EMPTY_NOTE_PROMPT,
    LOCATION_SAVED,
    ReplyClient,
    diagnostic_message,
    success_message,
    viewer_url,
)
from chainnote.webhook.events import UNKNOWN_USER, InboundEvent, extract_note_text

logger = logging.getLogger(__name__)


class NoteStage(StrEnum):
    """Processing stage of one message."""

    RECEIVED = "RECEIVED"
    VERIFIED = "VERIFIED"
    ENCODED = "ENCODED"
    BUILT = "BUILT"
    SIGNED = "SIGNED"
    ANNOUNCED = "ANNOUNCED"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    DIAGNOSED = "DIAGNOSED"


@dataclass(frozen=True)
class PipelineOutcome:
    """Terminal state of one processed note.

    Attributes:
        stage: ACKNOWLEDGED or DIAGNOSED.
        last_stage: Last stage completed before the terminal one.
        tx_hash: Transaction hash, once signed.
        url: Viewer URL (ACKNOWLEDGED only).
        error: The failure (DIAGNOSED only).
        reply: Text sent (or attempted) to the user.
    """

    stage: NoteStage
    last_stage: NoteStage
    tx_hash: str | None = None
    url: str | None = None
    error: BaseException | None = None
    reply: str | None = None

    @property
    def acknowledged(self) -> bool:
        return self.stage is NoteStage.ACKNOWLEDGED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotePipeline:
    """Turns chat events into anchored notes.

    Args:
        network: Resolved network profile.
        signer: Secrets boundary.
        announcer: Network boundary.
        reply_client: Reply channel (anything with ``async reply(token, text)``).
        locations: Pending-location store.
        recipient_address: Fixed recipient; defaults to the signer's address.
        message_max_bytes: Byte budget for the JSON note.
        deadline_horizon: Requested transaction validity window.
        fee_multiplier: Fee multiplier.
        secrets: Values masked out of diagnostics.
        now: Clock returning an aware datetime. Inject for tests.
    """

    def __init__(
        self,
        network: NetworkProfile,
        signer: NoteSigner,
        announcer: Announcer,
        reply_client: ReplyClient,
        *,
        locations: LocationStore | None = None,
        recipient_address: str | None = None,
        message_max_bytes: int = DEFAULT_MESSAGE_MAX_BYTES,
        deadline_horizon: timedelta = DEFAULT_DEADLINE_HORIZON,
        fee_multiplier: int = DEFAULT_FEE_MULTIPLIER,
        secrets: Iterable[str] = (),
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._network = network
        self._signer = signer
        self._announcer = announcer
        self._reply_client = reply_client
        self._locations = locations if locations is not None else LocationStore()
        self._recipient_address = recipient_address or signer.address
        self._message_max_bytes = message_max_bytes
        self._deadline_horizon = deadline_horizon
        self._fee_multiplier = fee_multiplier
        self._secrets = tuple(s for s in secrets if s)
        self._now = now or _utcnow

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        signer: NoteSigner | None = None,
        transport: AnnounceTransport | None = None,
        reply_client: ReplyClient | None = None,
    ) -> NotePipeline:
        """Wire a pipeline from configuration.

        Raises:
            ConfigurationError: If required options are missing.
        """
        settings.require()
        network = settings.network
        assert settings.node_url is not None  # guaranteed by require()
        assert settings.line_access_token is not None  # guaranteed by require()
        assert settings.symbol_private_key is not None  # guaranteed by require()
        return cls(
            network,
            signer or SymbolSigner(settings.symbol_private_key, network),
            Announcer(
                settings.node_url,
                transport=transport,
                timeout=settings.announce_timeout,
            ),
            reply_client
            or ReplyClient(
                settings.line_access_token,
                endpoint=settings.line_reply_endpoint,
                timeout=settings.reply_timeout,
            ),
            locations=LocationStore(ttl_seconds=settings.location_ttl_seconds),
            recipient_address=settings.recipient_address,
            message_max_bytes=settings.message_max_bytes,
            deadline_horizon=timedelta(hours=settings.deadline_hours),
            fee_multiplier=settings.fee_multiplier,
            secrets=(
                settings.line_channel_secret or "",
                settings.line_access_token,
                settings.symbol_private_key,
            ),
        )

    @property
    def locations(self) -> LocationStore:
        return self._locations

    # -----------------------------------------------------------------
    # Batch
    # -----------------------------------------------------------------

    async def process_events(
        self, events: Iterable[InboundEvent]
    ) -> list[PipelineOutcome]:
        """Process every event of one delivery, isolating failures."""
        outcomes: list[PipelineOutcome] = []
        for event in events:
            try:
                outcome = await self.process_event(event)
            except Exception:
                logger.exception("unhandled error processing event from %s", event.user_id)
                continue
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    async def process_event(self, event: InboundEvent) -> PipelineOutcome | None:
        """Handle one event. Returns None when no note was attempted."""
        if event.is_location:
            if event.user_id == UNKNOWN_USER:
                # No sender id: the location could not be told apart from
                # other anonymous senders, so it is not kept.
                logger.info("dropping location from a source without a user id")
                return None
            assert event.latitude is not None  # guaranteed by is_location
            assert event.longitude is not None  # guaranteed by is_location
            self._locations.put(
                event.user_id,
                Location(lat=event.latitude, lon=event.longitude, address=event.address),
            )
            await self._reply(event.reply_token, LOCATION_SAVED)
            return None

        if not event.is_text:
            return None
        assert event.text is not None  # guaranteed by is_text

        note_text = extract_note_text(event.text)
        if note_text is None:
            logger.debug("ignoring non-note message from %s", event.user_id)
            return None
        if not note_text:
            await self._reply(event.reply_token, EMPTY_NOTE_PROMPT)
            return None

        return await self.record_note(event, note_text)

    # -----------------------------------------------------------------
    # Single note
    # -----------------------------------------------------------------

    async def record_note(self, event: InboundEvent, note_text: str) -> PipelineOutcome:
        """Run one note through encode, build, sign, announce and reply."""
        stage = NoteStage.VERIFIED
        tx_hash: str | None = None
        location = self._pending_location(event.user_id)
        now = self._now()

        try:
            payload = NotePayload(
                user_id=event.user_id,
                text=note_text,
                timestamp=int(now.timestamp()),
                lat=location.lat if location else None,
                lon=location.lon if location else None,
                address=location.address if location else None,
            )
            note_bytes = fit_note(payload, self._message_max_bytes)
            message = encode_message(note_bytes)
            stage = NoteStage.ENCODED

            descriptor = build_transfer(
                self._recipient_address,
                message,
                self._network,
                deadline_horizon=self._deadline_horizon,
                fee_multiplier=self._fee_multiplier,
                now=now,
            )
            stage = NoteStage.BUILT

            signed = self._signer.sign(descriptor)
            tx_hash = signed.hash
            stage = NoteStage.SIGNED

            result = await self._announcer.announce(signed)
            stage = NoteStage.ANNOUNCED
            error = result.to_error()
            if error is not None:
                raise error
        except Exception as exc:
            if (
                location is not None
                and stage is NoteStage.VERIFIED
                and isinstance(exc, EncodingError)
            ):
                # The stored location may be what fails to encode; drop it
                # so the next note is not blocked until the entry expires.
                self._locations.discard(event.user_id)
            return await self._diagnose(event, stage, exc, tx_hash)

        url = viewer_url(self._network, signed.hash)
        text = success_message(url, location)
        self._locations.discard(event.user_id)
        logger.info("note from %s anchored as %s", event.user_id, signed.hash)
        await self._reply(event.reply_token, text)
        return PipelineOutcome(
            stage=NoteStage.ACKNOWLEDGED,
            last_stage=stage,
            tx_hash=signed.hash,
            url=url,
            reply=text,
        )

    def _pending_location(self, user_id: str) -> Location | None:
        if user_id == UNKNOWN_USER:
            return None
        return self._locations.get(user_id)

    async def _diagnose(
        self,
        event: InboundEvent,
        stage: NoteStage,
        exc: Exception,
        tx_hash: str | None,
    ) -> PipelineOutcome:
        if isinstance(exc, ChainNoteError):
            logger.warning(
                "note from %s failed after %s: %s %s",
                event.user_id,
                stage,
                exc.error_code,
                exc.details,
            )
        else:
            logger.exception("note from %s failed after %s", event.user_id, stage)
        text = diagnostic_message(exc, self._secrets)
        await self._reply(event.reply_token, text)
        return PipelineOutcome(
            stage=NoteStage.DIAGNOSED,
            last_stage=stage,
            tx_hash=tx_hash,
            error=exc,
            reply=text,
        )

    async def _reply(self, reply_token: str | None, text: str) -> None:
        try:
            await self._reply_client.reply(reply_token, text)
        except Exception:
            logger.exception("reply client raised; reply dropped")
