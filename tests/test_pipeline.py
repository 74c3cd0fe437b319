"""
Tests for the note pipeline — fake signer, transport and reply client.

Test plan:
- Happy path: one announce, ACKNOWLEDGED, reply carries the viewer link,
  on-ledger message decodes to the note
- Non-notes and empty notes never reach the signer or the node
- Location: stored, attached to the next note, discarded after an
  accepted announce or when it cannot be encoded; never kept for senders
  without a user id
- Every failure stage is DIAGNOSED with exactly one bounded reply and no
  later stage runs: encode, sign, reject, transport, timeout, foreign error
- Batch: siblings isolated, order preserved
- from_settings refuses incomplete configuration
"""

import asyncio
import hashlib
import json
from datetime import datetime, timezone
from typing import Any

import httpx
import pytest

from chainnote.config import NETWORKS, Settings
from chainnote.errors import (
    AnnounceTimeoutError,
    AnnounceTransportError,
    ConfigurationError,
    EncodingError,
    RejectionError,
    SigningError,
)
from chainnote.ledger.announcer import Announcer
from chainnote.ledger.signer import SignedTransaction
from chainnote.ledger.transport import TransportResponse
from chainnote.ledger.tx import DEFAULT_FEE_MULTIPLIER, TransactionDescriptor
from chainnote.note.location import Location, LocationStore
from chainnote.note.memo import decode_message
from chainnote.pipeline import NotePipeline, NoteStage
from chainnote.reply import EMPTY_NOTE_PROMPT, LOCATION_SAVED, MAX_DIAGNOSTIC_CHARS
from chainnote.webhook.events import UNKNOWN_USER, InboundEvent, parse_event

NODE_URL = "http://node.test:3000"
SIGNER_ADDRESS = "TBRECIPIENTADDRESSFORTESTS0000000000000"
FIXED_NOW = datetime(2025, 1, 1, 0, 0, tzinfo=timezone.utc)

PUSHED = TransportResponse(
    202, json.dumps({"message": "packet 9 was pushed to the network via /transactions"})
)
REJECTED = TransportResponse(200, json.dumps({"message": "Failure_Core_Insufficient_Balance"}))

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeSigner:
    """Deterministic signer: hash is sha256 of the message."""

    def __init__(self, exc: Exception | None = None) -> None:
        self._exc = exc
        self.signed: list[TransactionDescriptor] = []

    @property
    def address(self) -> str:
        return SIGNER_ADDRESS

    @property
    def public_key(self) -> str:
        return "00" * 32

    def sign(self, descriptor: TransactionDescriptor) -> SignedTransaction:
        if self._exc is not None:
            raise self._exc
        self.signed.append(descriptor)
        digest = hashlib.sha256(descriptor.message).hexdigest().upper()
        return SignedTransaction(payload=descriptor.message.hex().upper(), hash=digest)


class FakeTransport:
    """Pops queued responses (or exceptions); repeats the last one."""

    def __init__(self, *responses: TransportResponse | Exception) -> None:
        self._responses = list(responses) or [PUSHED]
        self.calls: list[dict[str, Any]] = []

    async def put_json(self, url: str, body: dict[str, Any]) -> TransportResponse:
        self.calls.append(body)
        item = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(item, Exception):
            raise item
        return item


class SlowTransport:
    def __init__(self) -> None:
        self.calls = 0

    async def put_json(self, url: str, body: dict[str, Any]) -> TransportResponse:
        self.calls += 1
        await asyncio.sleep(10)
        return PUSHED


class FakeReplyClient:
    def __init__(self) -> None:
        self.replies: list[tuple[str | None, str]] = []

    async def reply(self, reply_token: str | None, text: str) -> bool:
        self.replies.append((reply_token, text))
        return True


class RaisingReplyClient:
    async def reply(self, reply_token: str | None, text: str) -> bool:
        raise RuntimeError("reply channel down")


class ExplodingLocationStore(LocationStore):
    """Raises on lookup for one user to simulate a bug outside the stages."""

    def get(self, user_id: str) -> Location | None:
        if user_id == "Ubroken":
            raise RuntimeError("store corrupted")
        return super().get(user_id)


def _make_pipeline(
    *,
    signer: FakeSigner | None = None,
    transport: Any = None,
    reply_client: Any = None,
    timeout: float = 8.0,
    **kwargs: Any,
) -> NotePipeline:
    return NotePipeline(
        NETWORKS["testnet"],
        signer or FakeSigner(),
        Announcer(NODE_URL, transport=transport or FakeTransport(), timeout=timeout),
        reply_client or FakeReplyClient(),
        now=lambda: FIXED_NOW,
        **kwargs,
    )


def _text(text: str, user_id: str = "U1", token: str = "rt-1") -> InboundEvent:
    return InboundEvent(
        type="message", reply_token=token, user_id=user_id, message_type="text", text=text
    )


def _location(lat: float, lon: float, user_id: str = "U1") -> InboundEvent:
    return InboundEvent(
        type="message",
        reply_token="rt-loc",
        user_id=user_id,
        message_type="location",
        latitude=lat,
        longitude=lon,
        address="Chiyoda, Tokyo",
    )


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestAcknowledged:
    @pytest.mark.asyncio
    async def test_note_anchored(self) -> None:
        signer, transport, replies = FakeSigner(), FakeTransport(), FakeReplyClient()
        pipeline = _make_pipeline(signer=signer, transport=transport, reply_client=replies)

        outcome = await pipeline.process_event(_text("note: hello"))

        assert outcome is not None
        assert outcome.stage is NoteStage.ACKNOWLEDGED
        assert outcome.last_stage is NoteStage.ANNOUNCED
        assert outcome.url == f"https://testnet.symbol.fyi/transactions/{outcome.tx_hash}"
        assert len(transport.calls) == 1
        assert replies.replies == [("rt-1", outcome.reply)]
        assert outcome.url in (outcome.reply or "")

    @pytest.mark.asyncio
    async def test_descriptor_contents(self) -> None:
        signer = FakeSigner()
        pipeline = _make_pipeline(signer=signer)

        await pipeline.process_event(_text("\U0001F4DD hello", user_id="Uabc"))

        descriptor = signer.signed[0]
        assert descriptor.recipient_address == SIGNER_ADDRESS
        assert descriptor.amount == 0
        assert descriptor.mosaic_id == 0x72C0212E67A08BCE
        assert descriptor.fee_multiplier == DEFAULT_FEE_MULTIPLIER
        note = decode_message(descriptor.message)
        assert note["text"] == "hello"
        assert note["userId"] == "Uabc"
        assert note["timestamp"] == int(FIXED_NOW.timestamp())

    @pytest.mark.asyncio
    async def test_configured_recipient(self) -> None:
        signer = FakeSigner()
        pipeline = _make_pipeline(signer=signer, recipient_address="TOTHERADDRESS")
        await pipeline.process_event(_text("note: x"))
        assert signer.signed[0].recipient_address == "TOTHERADDRESS"

    @pytest.mark.asyncio
    async def test_long_note_truncated_to_budget(self) -> None:
        signer = FakeSigner()
        pipeline = _make_pipeline(signer=signer)

        outcome = await pipeline.process_event(_text("note: " + "a" * 2000))

        assert outcome is not None and outcome.acknowledged
        message = signer.signed[0].message
        assert len(message) <= 1024
        assert "a" * 100 in decode_message(message)["text"]

    @pytest.mark.asyncio
    async def test_reply_failure_does_not_change_outcome(self) -> None:
        pipeline = _make_pipeline(reply_client=RaisingReplyClient())
        outcome = await pipeline.process_event(_text("note: hello"))
        assert outcome is not None and outcome.acknowledged


# ---------------------------------------------------------------------------
# Ignored messages
# ---------------------------------------------------------------------------


class TestIgnored:
    @pytest.mark.asyncio
    async def test_plain_chat_ignored(self) -> None:
        signer, transport, replies = FakeSigner(), FakeTransport(), FakeReplyClient()
        pipeline = _make_pipeline(signer=signer, transport=transport, reply_client=replies)

        assert await pipeline.process_event(_text("hello")) is None

        assert signer.signed == []
        assert transport.calls == []
        assert replies.replies == []

    @pytest.mark.asyncio
    async def test_empty_note_prompts(self) -> None:
        transport, replies = FakeTransport(), FakeReplyClient()
        pipeline = _make_pipeline(transport=transport, reply_client=replies)

        assert await pipeline.process_event(_text("note:   ")) is None

        assert transport.calls == []
        assert replies.replies == [("rt-1", EMPTY_NOTE_PROMPT)]

    @pytest.mark.asyncio
    async def test_non_message_event_ignored(self) -> None:
        replies = FakeReplyClient()
        pipeline = _make_pipeline(reply_client=replies)
        event = InboundEvent(type="follow", reply_token="rt", user_id="U1")
        assert await pipeline.process_event(event) is None
        assert replies.replies == []


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------


class TestLocation:
    @pytest.mark.asyncio
    async def test_location_attached_then_discarded(self) -> None:
        signer, replies = FakeSigner(), FakeReplyClient()
        pipeline = _make_pipeline(signer=signer, reply_client=replies)

        assert await pipeline.process_event(_location(35.68, 139.76)) is None
        assert replies.replies[-1] == ("rt-loc", LOCATION_SAVED)

        outcome = await pipeline.process_event(_text("note: here"))

        note = decode_message(signer.signed[0].message)
        assert (note["lat"], note["lon"]) == (35.68, 139.76)
        assert note["address"] == "Chiyoda, Tokyo"
        assert outcome is not None and "lat:35.68" in (outcome.reply or "")
        assert pipeline.locations.get("U1") is None

    @pytest.mark.asyncio
    async def test_location_per_user(self) -> None:
        signer = FakeSigner()
        pipeline = _make_pipeline(signer=signer)
        await pipeline.process_event(_location(1.0, 2.0, user_id="Uother"))

        await pipeline.process_event(_text("note: mine", user_id="U1"))

        assert "lat" not in decode_message(signer.signed[0].message)
        assert pipeline.locations.get("Uother") is not None

    @pytest.mark.asyncio
    async def test_anonymous_sources_never_share_location(self) -> None:
        signer, replies = FakeSigner(), FakeReplyClient()
        pipeline = _make_pipeline(signer=signer, reply_client=replies)
        location = parse_event(
            {
                "type": "message",
                "replyToken": "rt-g1",
                "source": {"type": "group", "groupId": "G1"},
                "message": {
                    "type": "location",
                    "latitude": 35.6,
                    "longitude": 139.7,
                    "address": "Alice home",
                },
            }
        )
        note = parse_event(
            {
                "type": "message",
                "replyToken": "rt-g2",
                "source": {"type": "group", "groupId": "G2"},
                "message": {"type": "text", "text": "note: bob note"},
            }
        )
        assert location is not None and note is not None
        assert location.user_id == note.user_id == UNKNOWN_USER

        await pipeline.process_events([location, note])

        recorded = decode_message(signer.signed[0].message)
        assert "lat" not in recorded
        assert "address" not in recorded
        assert len(pipeline.locations) == 0
        assert all(token != "rt-g1" for token, _ in replies.replies)

    @pytest.mark.asyncio
    async def test_unencodable_location_discarded(self) -> None:
        signer = FakeSigner()
        pipeline = _make_pipeline(signer=signer)
        pipeline.locations.put("U1", Location(lat=91.0, lon=0.0))

        first = await pipeline.process_event(_text("note: first"))
        second = await pipeline.process_event(_text("note: second"))

        assert first is not None
        assert isinstance(first.error, EncodingError)
        assert second is not None and second.acknowledged
        assert "lat" not in decode_message(signer.signed[0].message)

    @pytest.mark.asyncio
    async def test_location_kept_when_rejected(self) -> None:
        pipeline = _make_pipeline(transport=FakeTransport(REJECTED))
        await pipeline.process_event(_location(1.0, 2.0))

        outcome = await pipeline.process_event(_text("note: x"))

        assert outcome is not None and not outcome.acknowledged
        assert pipeline.locations.get("U1") == Location(1.0, 2.0, "Chiyoda, Tokyo")


# ---------------------------------------------------------------------------
# Diagnosed
# ---------------------------------------------------------------------------


class TestDiagnosed:
    @pytest.mark.asyncio
    async def test_encode_failure(self) -> None:
        signer, transport, replies = FakeSigner(), FakeTransport(), FakeReplyClient()
        pipeline = _make_pipeline(
            signer=signer, transport=transport, reply_client=replies, message_max_bytes=10
        )

        outcome = await pipeline.process_event(_text("note: hello"))

        assert outcome is not None
        assert outcome.stage is NoteStage.DIAGNOSED
        assert outcome.last_stage is NoteStage.VERIFIED
        assert isinstance(outcome.error, EncodingError)
        assert signer.signed == []
        assert transport.calls == []
        assert len(replies.replies) == 1

    @pytest.mark.asyncio
    async def test_sign_failure(self) -> None:
        transport = FakeTransport()
        pipeline = _make_pipeline(
            signer=FakeSigner(SigningError("signing failed: ValueError")), transport=transport
        )

        outcome = await pipeline.process_event(_text("note: hello"))

        assert outcome is not None
        assert outcome.last_stage is NoteStage.BUILT
        assert outcome.tx_hash is None
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_rejected(self) -> None:
        replies = FakeReplyClient()
        pipeline = _make_pipeline(transport=FakeTransport(REJECTED), reply_client=replies)

        outcome = await pipeline.process_event(_text("note: hello"))

        assert outcome is not None
        assert outcome.stage is NoteStage.DIAGNOSED
        assert outcome.last_stage is NoteStage.ANNOUNCED
        assert isinstance(outcome.error, RejectionError)
        assert outcome.tx_hash is not None
        assert "Failure_Core_Insufficient_Balance" in replies.replies[0][1]
        assert "symbol.fyi" not in replies.replies[0][1]

    @pytest.mark.asyncio
    async def test_transport_failure(self) -> None:
        transport = FakeTransport(httpx.ConnectError("refused"))
        pipeline = _make_pipeline(transport=transport)

        outcome = await pipeline.process_event(_text("note: hello"))

        assert outcome is not None
        assert isinstance(outcome.error, AnnounceTransportError)
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        transport, replies = SlowTransport(), FakeReplyClient()
        pipeline = _make_pipeline(transport=transport, reply_client=replies, timeout=0.05)

        outcome = await pipeline.process_event(_text("note: hello"))

        assert outcome is not None
        assert isinstance(outcome.error, AnnounceTimeoutError)
        assert transport.calls == 1
        assert "unknown" in replies.replies[0][1]

    @pytest.mark.asyncio
    async def test_foreign_error_reduced_to_type(self) -> None:
        replies = FakeReplyClient()
        pipeline = _make_pipeline(
            signer=FakeSigner(RuntimeError("secret-bearing detail")), reply_client=replies
        )

        outcome = await pipeline.process_event(_text("note: hello"))

        assert outcome is not None and outcome.stage is NoteStage.DIAGNOSED
        text = replies.replies[0][1]
        assert "RuntimeError" in text
        assert "secret-bearing" not in text

    @pytest.mark.asyncio
    async def test_secrets_masked(self) -> None:
        key = "F" * 64
        replies = FakeReplyClient()
        pipeline = _make_pipeline(
            signer=FakeSigner(SigningError(f"bad key {key}")),
            reply_client=replies,
            secrets=[key],
        )

        await pipeline.process_event(_text("note: hello"))

        text = replies.replies[0][1]
        assert key not in text
        assert len(text) <= MAX_DIAGNOSTIC_CHARS


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------


class TestBatch:
    @pytest.mark.asyncio
    async def test_failure_isolated(self) -> None:
        transport = FakeTransport(REJECTED, PUSHED)
        replies = FakeReplyClient()
        pipeline = _make_pipeline(transport=transport, reply_client=replies)

        outcomes = await pipeline.process_events(
            [
                _text("note: first", token="t1"),
                _text("chatter", token="t2"),
                _text("note: second", token="t3"),
            ]
        )

        assert [o.stage for o in outcomes] == [NoteStage.DIAGNOSED, NoteStage.ACKNOWLEDGED]
        assert [token for token, _ in replies.replies] == ["t1", "t3"]
        assert len(transport.calls) == 2

    @pytest.mark.asyncio
    async def test_unhandled_error_skips_only_that_event(self) -> None:
        transport = FakeTransport()
        pipeline = _make_pipeline(transport=transport, locations=ExplodingLocationStore())

        outcomes = await pipeline.process_events(
            [_text("note: a", user_id="Ubroken"), _text("note: b", user_id="U2")]
        )

        assert len(outcomes) == 1
        assert outcomes[0].acknowledged
        assert len(transport.calls) == 1


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


class TestFromSettings:
    def test_missing_config_refused(self) -> None:
        settings = Settings(_env_file=None, node_url=None)
        with pytest.raises(ConfigurationError, match="Missing env"):
            NotePipeline.from_settings(settings, signer=FakeSigner())

    @pytest.mark.asyncio
    async def test_wired_from_settings(self) -> None:
        settings = Settings(
            _env_file=None,
            node_url=NODE_URL,
            line_channel_secret="channel-secret",
            line_access_token="access-token",
            symbol_private_key="A" * 64,
            fee_multiplier=150,
        )
        signer, transport, replies = FakeSigner(), FakeTransport(), FakeReplyClient()
        pipeline = NotePipeline.from_settings(
            settings, signer=signer, transport=transport, reply_client=replies
        )

        outcome = await pipeline.process_event(_text("note: wired"))

        assert outcome is not None and outcome.acknowledged
        assert signer.signed[0].fee_multiplier == 150
