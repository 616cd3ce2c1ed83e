"""
Inbound webhook processor - turns a verified Telnyx event into stored state
and live events.

message.received runs these steps in order; each filter is an early exit that
writes nothing:
  1. normalize from/to              (bad number -> dropped)
  2. load or create inbound settings
  3. blocklist                      (-> dropped)
  4. keyword filters                (-> dropped)
  5. business hours, when enabled   (-> dropped)
  6. resolve or create the contact
  7. classify SMS/MMS, collect media URLs
  8. OTP detection
  9. persist as inbound/delivered, commit
 10. broadcast message.received (+ otp.received)
 11. auto-reply, when enabled      (failure is logged, nothing is undone)

Status events (sent/delivered/delivery_failed) update the stored message found
by carrier id and broadcast message.status. Everything else is acknowledged.
"""
import logging
import re
from datetime import datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from smsdash.context import AppContext
from smsdash.models.inbound_settings import DEFAULT_BUSINESS_DAYS, InboundSettings
from smsdash.schemas.api_responses import MessageOut, ContactOut, ProcessingOutcome, UserContext
from smsdash.schemas.carrier_events import (
    CarrierEvent,
    MessageFinalizedEvent,
    MessageReceivedEvent,
    MessageStatusEvent,
    ProfileUpdatedEvent,
)
from smsdash.services import store
from smsdash.services.broadcaster import build_event
from smsdash.services.carrier import CarrierError
from smsdash.services.outbound import send_message
from smsdash.utils.phone import InvalidPhoneNumber, mask_phone, normalize_phone

logger = logging.getLogger(__name__)

OTP_DIGITS = re.compile(r"^\d{4,8}$")
OTP_KEYWORDS = ("otp", "verification", "code")


class InboundPolicy(BaseModel):
    """Immutable copy of a user's InboundSettings row, taken once per event."""
    model_config = ConfigDict(frozen=True)

    blocked_numbers: tuple[str, ...] = ()
    keyword_filters: tuple[str, ...] = ()
    business_hours_only: bool = False
    business_hours_start: time = time(9, 0)
    business_hours_end: time = time(17, 0)
    business_days: tuple[int, ...] = tuple(DEFAULT_BUSINESS_DAYS)
    auto_reply_enabled: bool = False
    auto_reply_message: Optional[str] = None

    @classmethod
    def from_settings(cls, row: InboundSettings) -> "InboundPolicy":
        return cls(
            blocked_numbers=tuple(row.blocked_numbers or ()),
            keyword_filters=tuple(k for k in (row.keyword_filters or ()) if k),
            business_hours_only=bool(row.business_hours_only),
            business_hours_start=row.business_hours_start or time(9, 0),
            business_hours_end=row.business_hours_end or time(17, 0),
            business_days=tuple(row.business_days if row.business_days is not None else DEFAULT_BUSINESS_DAYS),
            auto_reply_enabled=bool(row.auto_reply_enabled),
            auto_reply_message=row.auto_reply_message,
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _business_tz(name: str):
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown business timezone %r, using UTC", name)
        return timezone.utc


def is_otp(text: str) -> bool:
    """Digit-only 4-8 char code, or mentions otp/verification/code."""
    trimmed = (text or "").strip()
    if OTP_DIGITS.match(trimmed):
        return True
    lowered = trimmed.lower()
    return any(word in lowered for word in OTP_KEYWORDS)


def is_blocked(sender: str, blocked_numbers) -> bool:
    for entry in blocked_numbers:
        try:
            if normalize_phone(entry) == sender:
                return True
        except InvalidPhoneNumber:
            if entry == sender:
                return True
    return False


def matched_keyword(text: str, keywords) -> Optional[str]:
    lowered = (text or "").lower()
    for keyword in keywords:
        if keyword and keyword.lower() in lowered:
            return keyword
    return None


def within_business_hours(policy: InboundPolicy, now: datetime, tz=timezone.utc) -> bool:
    """
    Weekday in policy.business_days (0=Sunday) and local time in [start, end).
    A start later than end is an overnight window.
    """
    local = now.astimezone(tz)
    weekday = (local.weekday() + 1) % 7
    if weekday not in policy.business_days:
        return False

    current = local.time().replace(tzinfo=None)
    start, end = policy.business_hours_start, policy.business_hours_end
    if start <= end:
        return start <= current < end
    return current >= start or current < end


async def process_carrier_event(
    db: AsyncSession,
    event: CarrierEvent,
    ctx: AppContext,
    user: UserContext,
) -> ProcessingOutcome:
    """Dispatch one parsed webhook event. PersistenceError propagates to the caller."""
    if isinstance(event, MessageReceivedEvent):
        return await handle_message_received(db, event, ctx, user)
    if isinstance(event, MessageStatusEvent):
        return await handle_status_update(db, event, ctx, user)
    if isinstance(event, MessageFinalizedEvent):
        return await handle_message_finalized(db, event, user)
    if isinstance(event, ProfileUpdatedEvent):
        return await handle_profile_update(db, event)

    logger.info(
        "Unhandled Telnyx event type: %s", event.event_type,
        extra={"event_type": event.event_type},
    )
    return ProcessingOutcome(status="ignored", reason="unhandled_event_type")


async def handle_message_received(
    db: AsyncSession,
    event: MessageReceivedEvent,
    ctx: AppContext,
    user: UserContext,
) -> ProcessingOutcome:
    payload = event.message
    log_extra = {"event_type": event.event_type, "carrier_message_id": payload.id, "user_id": user.user_id}

    # 1. Normalize
    try:
        from_number = normalize_phone(payload.sender_number)
        to_number = normalize_phone(payload.recipient_number)
    except InvalidPhoneNumber as e:
        logger.warning("Dropping inbound message with bad number: %s", str(e), extra=log_extra)
        return ProcessingOutcome(status="dropped", reason="invalid_phone_number")

    # Carrier retries of a message already stored
    if await store.get_message_by_carrier_id(db, payload.id) is not None:
        logger.info("Inbound message already stored, skipping", extra=log_extra)
        return ProcessingOutcome(status="skipped", reason="duplicate")

    # 2. Settings
    settings_row = await store.get_or_create_inbound_settings(db, user.user_id)
    policy = InboundPolicy.from_settings(settings_row)
    text = payload.text or ""

    # 3. Blocklist
    if is_blocked(from_number, policy.blocked_numbers):
        logger.info("Blocked number sent a message: %s", mask_phone(from_number), extra=log_extra)
        return ProcessingOutcome(status="dropped", reason="blocked_number")

    # 4. Keyword filters
    keyword = matched_keyword(text, policy.keyword_filters)
    if keyword:
        logger.info(
            "Message from %s matched keyword filter %r", mask_phone(from_number), keyword,
            extra=log_extra,
        )
        return ProcessingOutcome(status="dropped", reason="keyword_filter")

    # 5. Business hours
    if policy.business_hours_only and not within_business_hours(
        policy, _utcnow(), _business_tz(ctx.settings.business_timezone)
    ):
        logger.info("Message from %s outside business hours", mask_phone(from_number), extra=log_extra)
        return ProcessingOutcome(status="dropped", reason="outside_business_hours")

    # 6. Contact
    contact = await store.get_or_create_contact(db, from_number, user.user_id)

    # 7-8. Classification and OTP detection
    media_urls = payload.media_urls
    message_type = "MMS" if media_urls else "SMS"
    otp = is_otp(text)

    # 9. Persist
    message = await store.create_message(
        db,
        contact,
        telnyx_message_id=payload.id,
        direction="inbound",
        message_type=message_type,
        content=text,
        media_urls=media_urls,
        status="delivered",
        from_number=from_number,
        to_number=to_number,
        user_id=user.user_id,
        extra_data={
            "is_otp": otp,
            "received_at": _utcnow().isoformat(),
            "message_length": len(text),
            "has_media": bool(media_urls),
            "telnyx_webhook_id": event.envelope_id,
            "carrier": payload.from_.carrier if payload.from_ else None,
        },
    )
    await db.commit()
    message_id = str(message.id)
    logger.info(
        "Stored inbound %s from %s (otp=%s)", message_type, mask_phone(from_number), otp,
        extra=log_extra,
    )

    # 10. Broadcast
    message_out = MessageOut.from_model(message, contact).model_dump(mode="json")
    ctx.broadcaster.publish(
        build_event("message.received", user_id=user.user_id, message=message_out)
    )
    if otp:
        ctx.broadcaster.publish(
            build_event(
                "otp.received",
                user_id=user.user_id,
                message=message_out,
                contact=ContactOut.from_model(contact).model_dump(mode="json"),
                otp=text.strip(),
            )
        )

    # 11. Auto-reply. A failed reply rolls the session back, so nothing below reads ORM state
    auto_reply = None
    if policy.auto_reply_enabled and policy.auto_reply_message:
        auto_reply = await _send_auto_reply(db, ctx, user, from_number, to_number, policy.auto_reply_message)

    return ProcessingOutcome(
        status="stored", message_id=message_id, auto_reply=auto_reply,
    )


async def _send_auto_reply(
    db: AsyncSession,
    ctx: AppContext,
    user: UserContext,
    sender: str,
    our_number: str,
    reply_text: str,
) -> str:
    """Reply from the number that received the message. Returns "sent" or "failed"."""
    try:
        await send_message(
            db, ctx.carrier, ctx.broadcaster, user,
            to=sender, from_=our_number, text=reply_text,
        )
    except (CarrierError, store.PersistenceError, InvalidPhoneNumber) as e:
        logger.error(
            "Auto-reply to %s failed: %s", mask_phone(sender), str(e),
            extra={"user_id": user.user_id},
        )
        await db.rollback()
        return "failed"
    logger.info("Auto-reply sent to %s", mask_phone(sender), extra={"user_id": user.user_id})
    return "sent"


def _status_metadata(event: MessageStatusEvent) -> dict:
    payload = event.message
    status = event.status
    if status == "sent":
        return {"sent_at": payload.sent_at or event.occurred_at, "telnyx_status": "sent"}
    if status == "delivered":
        return {
            "delivered_at": payload.delivered_at or payload.completed_at or event.occurred_at,
            "telnyx_status": "delivered",
        }
    return {
        "failed_at": payload.failed_at or payload.completed_at or event.occurred_at,
        "telnyx_status": "failed",
        "failure_reason": payload.error_detail or "Unknown",
    }


async def handle_status_update(
    db: AsyncSession,
    event: MessageStatusEvent,
    ctx: AppContext,
    user: UserContext,
) -> ProcessingOutcome:
    carrier_id = event.message.id
    message = await store.update_message_by_carrier_id(
        db, carrier_id, user.user_id,
        status=event.status,
        metadata_patch=_status_metadata(event),
    )
    if message is None:
        logger.info(
            "Status %s for unknown message", event.status,
            extra={"event_type": event.event_type, "carrier_message_id": carrier_id},
        )
        return ProcessingOutcome(status="ignored", reason="unknown_message")

    await db.commit()
    ctx.broadcaster.publish(
        build_event(
            "message.status",
            user_id=message.user_id,
            message_id=str(message.id),
            carrier_message_id=carrier_id,
            status=message.status,
        )
    )
    logger.info(
        "Message status -> %s", message.status,
        extra={"event_type": event.event_type, "carrier_message_id": carrier_id},
    )
    return ProcessingOutcome(status="updated", message_id=str(message.id))


async def handle_message_finalized(
    db: AsyncSession, event: MessageFinalizedEvent, user: UserContext
) -> ProcessingOutcome:
    payload = event.message
    message = await store.update_message_by_carrier_id(
        db, payload.id, user.user_id,
        metadata_patch={
            "finalized_at": payload.finalized_at or payload.completed_at or event.occurred_at,
            "telnyx_status": "finalized",
            "final_status": payload.status,
        },
    )
    if message is None:
        return ProcessingOutcome(status="ignored", reason="unknown_message")
    await db.commit()
    return ProcessingOutcome(status="updated", message_id=str(message.id))


async def handle_profile_update(db: AsyncSession, event: ProfileUpdatedEvent) -> ProcessingOutcome:
    profile_payload = event.profile
    if not profile_payload.phone_number:
        return ProcessingOutcome(status="ignored", reason="no_phone_number")

    profile = await store.record_profile_webhook(
        db, profile_payload.phone_number, profile_payload.id
    )
    if profile is None:
        return ProcessingOutcome(status="ignored", reason="unknown_profile")
    await db.commit()
    logger.info("Messaging profile %s updated by carrier", profile.name)
    return ProcessingOutcome(status="updated")
