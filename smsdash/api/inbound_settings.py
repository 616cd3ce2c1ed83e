"""
Inbound settings endpoints - blocklist, keyword filters, business hours, auto-reply.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from smsdash.api.deps import get_current_user
from smsdash.database import get_db
from smsdash.schemas.api_responses import InboundSettingsOut, InboundSettingsUpdate, UserContext
from smsdash.services import store
from smsdash.utils.phone import InvalidPhoneNumber, normalize_phone

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("/inbound", response_model=InboundSettingsOut)
async def get_inbound_settings(
    db: AsyncSession = Depends(get_db),
    user: UserContext = Depends(get_current_user),
):
    try:
        settings = await store.get_or_create_inbound_settings(db, user.user_id)
    except store.PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to load inbound settings")
    return InboundSettingsOut.model_validate(settings)


@router.put("/inbound", response_model=InboundSettingsOut)
async def update_inbound_settings(
    payload: InboundSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserContext = Depends(get_current_user),
):
    changes = payload.model_dump(exclude_unset=True)

    if changes.get("blocked_numbers") is not None:
        try:
            # dict.fromkeys keeps order while dropping duplicates
            changes["blocked_numbers"] = list(dict.fromkeys(
                normalize_phone(n) for n in changes["blocked_numbers"]
            ))
        except InvalidPhoneNumber as e:
            raise HTTPException(status_code=400, detail=str(e))

    if changes.get("keyword_filters") is not None:
        changes["keyword_filters"] = [k.strip() for k in changes["keyword_filters"] if k.strip()]

    if changes.get("business_days") is not None:
        if any(d < 0 or d > 6 for d in changes["business_days"]):
            raise HTTPException(status_code=400, detail="business_days must be 0 (Sunday) to 6")
        changes["business_days"] = sorted(set(changes["business_days"]))

    # Explicit nulls on non-nullable flags/lists are ignored
    changes = {k: v for k, v in changes.items() if v is not None or k == "auto_reply_message"}

    try:
        settings = await store.update_inbound_settings(db, user.user_id, changes)
        await db.commit()
    except store.PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to update inbound settings")

    logger.info("Inbound settings updated: %s", ", ".join(sorted(changes)) or "nothing",
                extra={"user_id": user.user_id})
    return InboundSettingsOut.model_validate(settings)
