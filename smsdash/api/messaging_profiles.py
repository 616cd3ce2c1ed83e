"""
Messaging profile endpoints - which number outbound messages are sent from.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from smsdash.api.deps import get_app_context, get_app_settings, get_current_user
from smsdash.config import Settings
from smsdash.context import AppContext
from smsdash.database import get_db
from smsdash.schemas.api_responses import (
    MessagingProfileCreate,
    MessagingProfileOut,
    MessagingProfileSetup,
    UserContext,
)
from smsdash.services import store
from smsdash.services.carrier import CarrierError, CarrierNotConfigured
from smsdash.utils.phone import InvalidPhoneNumber, normalize_phone, to_display

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/messaging-profiles", tags=["messaging-profiles"])


@router.get("", response_model=list[MessagingProfileOut])
async def list_profiles(
    db: AsyncSession = Depends(get_db),
    user: UserContext = Depends(get_current_user),
):
    try:
        profiles = await store.list_messaging_profiles(db, user.user_id)
    except store.PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to load messaging profiles")
    return [MessagingProfileOut.from_model(p) for p in profiles]


@router.post("", response_model=MessagingProfileOut, status_code=201)
async def create_profile(
    payload: MessagingProfileCreate,
    db: AsyncSession = Depends(get_db),
    user: UserContext = Depends(get_current_user),
):
    """Create a profile. It becomes the only active one."""
    try:
        profile = await store.create_messaging_profile(
            db,
            user_id=user.user_id,
            profile_id=payload.profile_id,
            name=payload.name,
            webhook_url=payload.webhook_url,
            webhook_failover_url=payload.webhook_failover_url,
        )
        await db.commit()
    except store.PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to create messaging profile")
    return MessagingProfileOut.from_model(profile)


@router.post("/setup", response_model=MessagingProfileOut)
async def setup_number(
    payload: MessagingProfileSetup,
    db: AsyncSession = Depends(get_db),
    user: UserContext = Depends(get_current_user),
    settings: Settings = Depends(get_app_settings),
):
    """Point the active profile at a Telnyx number, creating one if needed."""
    try:
        phone_number = normalize_phone(payload.phone_number)
    except InvalidPhoneNumber as e:
        raise HTTPException(status_code=400, detail=str(e))

    webhook_url = f"{settings.app_base_url.rstrip('/')}/api/webhooks/telnyx"
    try:
        profile = await store.update_messaging_profile_phone(
            db,
            user.user_id,
            phone_number,
            webhook_url=webhook_url,
            webhook_failover_url=webhook_url,
        )
        await db.commit()
    except store.PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to set up messaging profile")

    logger.info("Sender number set to %s", to_display(phone_number), extra={"user_id": user.user_id})
    return MessagingProfileOut.from_model(profile)


@router.get("/carrier")
async def list_carrier_profiles(ctx: AppContext = Depends(get_app_context)):
    """Messaging profiles as configured on the Telnyx account."""
    try:
        profiles = await ctx.carrier.list_messaging_profiles()
    except CarrierNotConfigured as e:
        raise HTTPException(status_code=503, detail=e.detail)
    except CarrierError as e:
        raise HTTPException(status_code=502, detail=f"Telnyx API error: {e.detail}")
    return {
        "profiles": [
            {
                "id": p.get("id"),
                "name": p.get("name"),
                "enabled": p.get("enabled"),
                "webhook_url": p.get("webhook_url"),
            }
            for p in profiles
        ]
    }
