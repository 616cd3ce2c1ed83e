"""
Message endpoints - conversation history and outbound send.
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from smsdash.api.deps import get_app_context, get_current_user
from smsdash.context import AppContext
from smsdash.database import get_db
from smsdash.schemas.api_responses import (
    MessageListResponse,
    MessageOut,
    SendMessageRequest,
    SendMessageResponse,
    UserContext,
)
from smsdash.services import store
from smsdash.services.carrier import CarrierNotConfigured
from smsdash.services.outbound import InvalidSendRequest, SendFailed, send_message
from smsdash.utils.phone import InvalidPhoneNumber

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["messages"])


@router.get("/messages", response_model=MessageListResponse)
async def list_messages(
    contact_id: Optional[uuid.UUID] = Query(default=None),
    limit: int = Query(default=store.DEFAULT_MESSAGE_LIMIT, ge=1, le=store.MAX_MESSAGE_LIMIT),
    db: AsyncSession = Depends(get_db),
    user: UserContext = Depends(get_current_user),
):
    """Newest first. Filter to one conversation with contact_id."""
    try:
        messages = await store.list_messages(db, user.user_id, contact_id=contact_id, limit=limit)
        total = await store.count_messages(db, user.user_id, contact_id=contact_id)
    except store.PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to load messages")
    return MessageListResponse(
        messages=[MessageOut.from_model(m, m.contact) for m in messages],
        total=total,
    )


async def _resolve_sender(db: AsyncSession, ctx: AppContext, user: UserContext) -> Optional[str]:
    profile = await store.get_active_messaging_profile(db, user.user_id)
    if profile is not None:
        return profile.profile_id
    return ctx.settings.telnyx_from_number or None


@router.post("/send-message", response_model=SendMessageResponse)
async def send_message_endpoint(
    payload: SendMessageRequest,
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    user: UserContext = Depends(get_current_user),
):
    """
    Send an SMS/MMS. "from" falls back to the active messaging profile,
    then TELNYX_FROM_NUMBER.
    """
    try:
        sender = payload.from_ or await _resolve_sender(db, ctx, user)
        if not sender:
            raise HTTPException(
                status_code=400,
                detail="No sender number: pass 'from' or configure a messaging profile",
            )

        message = await send_message(
            db,
            ctx.carrier,
            ctx.broadcaster,
            user,
            to=payload.to,
            from_=sender,
            text=payload.text,
            media_urls=payload.media_urls,
        )
    except (InvalidSendRequest, InvalidPhoneNumber) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CarrierNotConfigured as e:
        raise HTTPException(status_code=503, detail=e.detail)
    except SendFailed as e:
        raise HTTPException(status_code=502, detail=f"Telnyx API error: {e.detail}")
    except store.PersistenceError:
        raise HTTPException(status_code=500, detail="Message sent but could not be stored")

    return SendMessageResponse(
        message=MessageOut.from_model(message, message.contact),
        telnyx_message_id=message.telnyx_message_id,
    )
