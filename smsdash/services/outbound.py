"""
Outbound send handler - user-initiated sends and inbound auto-replies.

Order matters: the carrier is called before anything is written, so a carrier
failure leaves no message row behind. The destination contact is resolved
first so its id is ready for the insert.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from smsdash.models.message import Message
from smsdash.schemas.api_responses import MessageOut, UserContext
from smsdash.services import store
from smsdash.services.broadcaster import Broadcaster, build_event
from smsdash.services.carrier import CarrierError, CarrierNotConfigured, TelnyxClient
from smsdash.utils.phone import mask_phone, normalize_phone

logger = logging.getLogger(__name__)


class InvalidSendRequest(ValueError):
    """Send request is missing a recipient, a sender, or any content."""


class SendFailed(CarrierError):
    """The carrier did not accept the message."""


async def send_message(
    db: AsyncSession,
    carrier: TelnyxClient,
    broadcaster: Broadcaster,
    user: UserContext,
    to: str,
    from_: str,
    text: Optional[str] = None,
    media_urls: Optional[list[str]] = None,
) -> Message:
    """
    Send a message and record it as outbound/sent.

    Raises:
        InvalidSendRequest: no to/from, or neither text nor media
        InvalidPhoneNumber: to/from cannot be normalized
        CarrierNotConfigured: no Telnyx API key
        SendFailed: carrier rejected or was unreachable (nothing persisted)
        PersistenceError: the message could not be stored after sending
    """
    media_urls = [url for url in (media_urls or []) if url]
    if not to or not from_:
        raise InvalidSendRequest("Both 'to' and 'from' are required")
    if not text and not media_urls:
        raise InvalidSendRequest("Message needs text or at least one media URL")

    to_number = normalize_phone(to)
    from_number = normalize_phone(from_)

    contact = await store.get_or_create_contact(db, to_number, user.user_id)

    try:
        carrier_message = await carrier.send_message(
            to=to_number, from_=from_number, text=text, media_urls=media_urls,
        )
    except CarrierNotConfigured:
        raise
    except CarrierError as e:
        logger.error(
            "Send to %s failed: %s", mask_phone(to_number), e.detail,
            extra={"user_id": user.user_id, "provider": carrier.provider},
        )
        raise SendFailed(e.detail, status_code=e.status_code) from e

    carrier_message_id = carrier_message["id"]
    message = await store.create_message(
        db,
        contact,
        telnyx_message_id=carrier_message_id,
        direction="outbound",
        message_type="MMS" if media_urls else "SMS",
        content=text or "",
        media_urls=media_urls,
        status="sent",
        from_number=from_number,
        to_number=to_number,
        user_id=user.user_id,
        extra_data={
            "sent_at": datetime.now(timezone.utc).isoformat(),
            "message_length": len(text or ""),
            "has_media": bool(media_urls),
        },
    )
    await db.commit()

    broadcaster.publish(
        build_event(
            "new_message",
            user_id=user.user_id,
            message=MessageOut.from_model(message, contact).model_dump(mode="json"),
        )
    )
    logger.info(
        "Outbound message stored for %s", mask_phone(to_number),
        extra={"user_id": user.user_id, "carrier_message_id": carrier_message_id},
    )
    return message
