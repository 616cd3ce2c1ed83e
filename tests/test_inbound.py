"""
Inbound webhook processor tests - filters, persistence, broadcasts, auto-reply,
and status reconciliation.
"""
import pytest
from datetime import datetime, time, timezone
from unittest.mock import patch
from smsdash.schemas.carrier_events import WebhookEnvelope, parse_carrier_event
from smsdash.services import store
from smsdash.services.carrier import CarrierError
from smsdash.services.inbound import (
    InboundPolicy,
    is_blocked,
    is_otp,
    matched_keyword,
    process_carrier_event,
    within_business_hours,
)
from smsdash.services.outbound import send_message
from tests.helpers import OUR_NUMBER, USER_ID, telnyx_envelope

SENDER = "+15551112222"

# Wednesday 2026-10-14 and Saturday 2026-10-17, both UTC
WEDNESDAY_NOON = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)
SATURDAY_NOON = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def _event(event_type="message.received", envelope_id="evt-1", **payload):
    body = telnyx_envelope(event_type, envelope_id, **payload)
    return parse_carrier_event(WebhookEnvelope.model_validate(body))


async def _configure(db, **changes):
    await store.update_inbound_settings(db, USER_ID, changes)
    await db.commit()


class TestHelpers:
    @pytest.mark.parametrize("text,expected", [
        ("482913", True),
        ("1234", True),
        ("12345678", True),
        ("  9876  ", True),
        ("123", False),
        ("123456789", False),
        ("Your verification code is 1234", True),
        ("OTP: 5555", True),
        ("Hello there", False),
        ("", False),
    ])
    def test_is_otp(self, text, expected):
        assert is_otp(text) is expected

    def test_blocklist_entries_are_normalized(self):
        assert is_blocked(SENDER, ["(555) 111-2222"]) is True
        assert is_blocked(SENDER, ["+15553334444"]) is False
        assert is_blocked(SENDER, ["garbage"]) is False

    def test_keyword_match_is_case_insensitive_substring(self):
        assert matched_keyword("please STOP now", ["stop"]) == "stop"
        assert matched_keyword("hello", ["stop", ""]) is None

    def test_business_hours_weekday_window(self):
        policy = InboundPolicy()
        assert within_business_hours(policy, WEDNESDAY_NOON) is True
        assert within_business_hours(policy, WEDNESDAY_NOON.replace(hour=17)) is False
        assert within_business_hours(policy, WEDNESDAY_NOON.replace(hour=9)) is True
        assert within_business_hours(policy, SATURDAY_NOON) is False

    def test_business_hours_sunday_is_zero(self):
        policy = InboundPolicy(business_days=(0,))
        sunday = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
        assert within_business_hours(policy, sunday) is True
        assert within_business_hours(policy, WEDNESDAY_NOON) is False

    def test_overnight_window(self):
        policy = InboundPolicy(
            business_hours_start=time(22, 0),
            business_hours_end=time(6, 0),
            business_days=(0, 1, 2, 3, 4, 5, 6),
        )
        assert within_business_hours(policy, WEDNESDAY_NOON.replace(hour=23)) is True
        assert within_business_hours(policy, WEDNESDAY_NOON.replace(hour=3)) is True
        assert within_business_hours(policy, WEDNESDAY_NOON) is False


class TestMessageReceived:
    async def test_stores_and_broadcasts(self, db, ctx, user, user_handle):
        outcome = await process_carrier_event(db, _event(), ctx, user)

        assert outcome.status == "stored"
        assert outcome.auto_reply is None

        message = await store.get_message_by_carrier_id(db, "msg-in-1")
        assert message.direction == "inbound"
        assert message.status == "delivered"
        assert message.message_type == "SMS"
        assert message.from_number == SENDER
        assert message.to_number == OUR_NUMBER
        assert message.extra_data["is_otp"] is False
        assert message.extra_data["message_length"] == 5
        assert message.extra_data["has_media"] is False
        assert message.extra_data["telnyx_webhook_id"] == "evt-1"
        assert message.contact.name == f"Contact {SENDER}"
        assert str(message.id) == outcome.message_id

        assert user_handle.types() == ["message.received"]
        event = user_handle.events[0]
        assert event["user_id"] == USER_ID
        assert event["message"]["telnyx_message_id"] == "msg-in-1"
        assert event["message"]["contact"]["phone_number"] == SENDER

    async def test_existing_contact_reused(self, db, ctx, user):
        existing = await store.create_contact(db, SENDER, USER_ID, name="Alice")
        await db.commit()
        await process_carrier_event(db, _event(), ctx, user)
        message = await store.get_message_by_carrier_id(db, "msg-in-1")
        assert message.contact_id == existing.id

    async def test_formatted_sender_is_normalized(self, db, ctx, user):
        await process_carrier_event(
            db, _event(**{"from": {"phone_number": "(555) 111-2222"}}), ctx, user,
        )
        message = await store.get_message_by_carrier_id(db, "msg-in-1")
        assert message.from_number == SENDER

    async def test_mms(self, db, ctx, user, user_handle):
        media = [
            {"url": "https://cdn.example.com/a.jpg", "content_type": "image/jpeg"},
            {"url": "https://cdn.example.com/b.jpg", "content_type": "image/jpeg"},
        ]
        await process_carrier_event(db, _event(text="", media=media), ctx, user)

        message = await store.get_message_by_carrier_id(db, "msg-in-1")
        assert message.message_type == "MMS"
        assert message.media_urls == ["https://cdn.example.com/a.jpg", "https://cdn.example.com/b.jpg"]
        assert message.extra_data["has_media"] is True
        assert user_handle.events[0]["message"]["message_type"] == "MMS"

    async def test_otp_emits_second_event(self, db, ctx, user, user_handle):
        await process_carrier_event(db, _event(text="482913"), ctx, user)

        assert user_handle.types() == ["message.received", "otp.received"]
        otp_event = user_handle.events[1]
        assert otp_event["otp"] == "482913"
        assert otp_event["contact"]["phone_number"] == SENDER
        message = await store.get_message_by_carrier_id(db, "msg-in-1")
        assert message.extra_data["is_otp"] is True

    async def test_invalid_sender_dropped(self, db, ctx, user, user_handle):
        outcome = await process_carrier_event(
            db, _event(**{"from": {"phone_number": "abc"}}), ctx, user,
        )
        assert outcome.status == "dropped"
        assert outcome.reason == "invalid_phone_number"
        assert await store.count_messages(db, USER_ID) == 0
        assert user_handle.events == []

    async def test_blocked_sender_dropped(self, db, ctx, user, user_handle):
        await _configure(db, blocked_numbers=["(555) 111-2222"])
        outcome = await process_carrier_event(db, _event(), ctx, user)

        assert outcome.reason == "blocked_number"
        assert await store.count_messages(db, USER_ID) == 0
        assert await store.get_contact_by_phone(db, SENDER, USER_ID) is None
        assert user_handle.events == []

    async def test_keyword_filter_dropped(self, db, ctx, user, user_handle):
        await _configure(db, keyword_filters=["stop"])
        outcome = await process_carrier_event(db, _event(text="please STOP now"), ctx, user)

        assert outcome.status == "dropped"
        assert outcome.reason == "keyword_filter"
        assert await store.count_messages(db, USER_ID) == 0
        assert user_handle.events == []

    async def test_outside_business_hours_dropped(self, db, ctx, user, user_handle):
        await _configure(db, business_hours_only=True)
        with patch("smsdash.services.inbound._utcnow", return_value=SATURDAY_NOON):
            outcome = await process_carrier_event(db, _event(), ctx, user)

        assert outcome.reason == "outside_business_hours"
        assert await store.count_messages(db, USER_ID) == 0
        assert user_handle.events == []

    async def test_inside_business_hours_stored(self, db, ctx, user):
        await _configure(db, business_hours_only=True)
        with patch("smsdash.services.inbound._utcnow", return_value=WEDNESDAY_NOON):
            outcome = await process_carrier_event(db, _event(), ctx, user)
        assert outcome.status == "stored"

    async def test_business_hours_ignored_when_disabled(self, db, ctx, user):
        with patch("smsdash.services.inbound._utcnow", return_value=SATURDAY_NOON):
            outcome = await process_carrier_event(db, _event(), ctx, user)
        assert outcome.status == "stored"

    async def test_redelivered_message_skipped(self, db, ctx, user, user_handle):
        await process_carrier_event(db, _event(), ctx, user)
        outcome = await process_carrier_event(db, _event(envelope_id="evt-retry"), ctx, user)

        assert outcome.status == "skipped"
        assert await store.count_messages(db, USER_ID) == 1
        assert user_handle.types() == ["message.received"]

    async def test_settings_created_on_first_message(self, db, ctx, user):
        assert await store.get_inbound_settings(db, USER_ID) is None
        await process_carrier_event(db, _event(), ctx, user)
        assert await store.get_inbound_settings(db, USER_ID) is not None


class TestAutoReply:
    async def test_auto_reply_sent_from_receiving_number(self, db, ctx, user, user_handle, mock_carrier):
        await _configure(db, auto_reply_enabled=True, auto_reply_message="Thanks, we'll be in touch")
        outcome = await process_carrier_event(db, _event(), ctx, user)

        assert outcome.status == "stored"
        assert outcome.auto_reply == "sent"
        mock_carrier.send_message.assert_awaited_once_with(
            to=SENDER, from_=OUR_NUMBER, text="Thanks, we'll be in touch", media_urls=[],
        )
        reply = await store.get_message_by_carrier_id(db, "out-msg-1")
        assert reply.direction == "outbound"
        assert reply.status == "sent"
        assert user_handle.types() == ["message.received", "new_message"]

    async def test_auto_reply_skipped_without_text(self, db, ctx, user, mock_carrier):
        await _configure(db, auto_reply_enabled=True, auto_reply_message="")
        outcome = await process_carrier_event(db, _event(), ctx, user)
        assert outcome.auto_reply is None
        mock_carrier.send_message.assert_not_awaited()

    async def test_auto_reply_failure_keeps_inbound(self, db, ctx, user, user_handle, mock_carrier):
        await _configure(db, auto_reply_enabled=True, auto_reply_message="Thanks")
        mock_carrier.send_message.side_effect = CarrierError("Invalid destination", status_code=422)

        outcome = await process_carrier_event(db, _event(), ctx, user)

        assert outcome.status == "stored"
        assert outcome.auto_reply == "failed"
        assert await store.count_messages(db, USER_ID) == 1
        assert await store.get_message_by_carrier_id(db, "msg-in-1") is not None
        assert user_handle.types() == ["message.received"]


class TestStatusUpdates:
    async def _sent_message(self, db, ctx, user):
        return await send_message(
            db, ctx.carrier, ctx.broadcaster, user, to=SENDER, from_=OUR_NUMBER, text="Hi",
        )

    async def test_delivered(self, db, ctx, user, user_handle):
        sent = await self._sent_message(db, ctx, user)
        event = _event("message.delivered", "evt-d", id="out-msg-1", completed_at="2026-10-17T14:00:05Z")

        outcome = await process_carrier_event(db, event, ctx, user)

        assert outcome.status == "updated"
        message = await store.get_message_by_carrier_id(db, "out-msg-1")
        assert message.status == "delivered"
        assert message.extra_data["delivered_at"] == "2026-10-17T14:00:05Z"
        assert message.extra_data["telnyx_status"] == "delivered"
        # metadata written at send time survives
        assert message.extra_data["has_media"] is False

        status_event = user_handle.events[-1]
        assert status_event["type"] == "message.status"
        assert status_event["message_id"] == str(sent.id)
        assert status_event["carrier_message_id"] == "out-msg-1"
        assert status_event["status"] == "delivered"

    async def test_delivery_failed_records_reason(self, db, ctx, user):
        await self._sent_message(db, ctx, user)
        event = _event(
            "message.delivery_failed", "evt-f", id="out-msg-1",
            errors=[{"code": "40008", "title": "Undeliverable", "detail": "Number unreachable"}],
        )
        await process_carrier_event(db, event, ctx, user)

        message = await store.get_message_by_carrier_id(db, "out-msg-1")
        assert message.status == "failed"
        assert message.extra_data["failure_reason"] == "Number unreachable"
        assert message.extra_data["telnyx_status"] == "failed"

    async def test_failure_reason_defaults_to_unknown(self, db, ctx, user):
        await self._sent_message(db, ctx, user)
        await process_carrier_event(db, _event("message.delivery_failed", "evt-f", id="out-msg-1"), ctx, user)
        message = await store.get_message_by_carrier_id(db, "out-msg-1")
        assert message.extra_data["failure_reason"] == "Unknown"

    async def test_repeated_status_is_idempotent(self, db, ctx, user, user_handle):
        await self._sent_message(db, ctx, user)
        first = await process_carrier_event(db, _event("message.sent", "evt-s1", id="out-msg-1"), ctx, user)
        second = await process_carrier_event(db, _event("message.sent", "evt-s2", id="out-msg-1"), ctx, user)

        assert first.status == second.status == "updated"
        message = await store.get_message_by_carrier_id(db, "out-msg-1")
        assert message.status == "sent"
        assert user_handle.types().count("message.status") == 2

    async def test_unknown_message_ignored(self, db, ctx, user, user_handle):
        outcome = await process_carrier_event(db, _event("message.delivered", id="never-sent"), ctx, user)
        assert outcome.status == "ignored"
        assert outcome.reason == "unknown_message"
        assert user_handle.events == []

    async def test_finalized_merges_metadata(self, db, ctx, user, user_handle):
        await self._sent_message(db, ctx, user)
        before = len(user_handle.events)
        event = _event(
            "message.finalized", "evt-fin", id="out-msg-1",
            status="delivered", completed_at="2026-10-17T14:00:09Z",
        )
        outcome = await process_carrier_event(db, event, ctx, user)

        assert outcome.status == "updated"
        message = await store.get_message_by_carrier_id(db, "out-msg-1")
        assert message.status == "sent"
        assert message.extra_data["telnyx_status"] == "finalized"
        assert message.extra_data["final_status"] == "delivered"
        assert message.extra_data["finalized_at"] == "2026-10-17T14:00:09Z"
        assert len(user_handle.events) == before


class TestOtherEvents:
    async def test_profile_update_recorded(self, db, ctx, user):
        await store.create_messaging_profile(db, USER_ID, OUR_NUMBER, "Main")
        await db.commit()
        body = {"data": {
            "event_type": "messaging_profile.updated",
            "id": "evt-p",
            "payload": {"id": "tx-prof-1", "phone_number": OUR_NUMBER},
        }}
        event = parse_carrier_event(WebhookEnvelope.model_validate(body))

        outcome = await process_carrier_event(db, event, ctx, user)

        assert outcome.status == "updated"
        profile = await store.get_active_messaging_profile(db, USER_ID)
        assert profile.extra_data["telnyx_profile_id"] == "tx-prof-1"

    async def test_profile_update_for_unknown_number(self, db, ctx, user):
        body = {"data": {
            "event_type": "messaging_profile.updated",
            "id": "evt-p",
            "payload": {"id": "tx-prof-1", "phone_number": "+19998887777"},
        }}
        event = parse_carrier_event(WebhookEnvelope.model_validate(body))
        outcome = await process_carrier_event(db, event, ctx, user)
        assert outcome.status == "ignored"

    async def test_unhandled_event(self, db, ctx, user, user_handle):
        event = parse_carrier_event(WebhookEnvelope.model_validate(
            {"data": {"event_type": "call.hangup", "id": "evt-c", "payload": {}}}
        ))
        outcome = await process_carrier_event(db, event, ctx, user)
        assert outcome.status == "ignored"
        assert outcome.reason == "unhandled_event_type"
        assert user_handle.events == []
