"""
Contact endpoints.
"""
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from smsdash.api.deps import get_current_user
from smsdash.database import get_db
from smsdash.schemas.api_responses import ContactCreate, ContactOut, UserContext
from smsdash.services import store
from smsdash.utils.phone import InvalidPhoneNumber, normalize_phone

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/contacts", tags=["contacts"])


@router.get("", response_model=list[ContactOut])
async def list_contacts(
    db: AsyncSession = Depends(get_db),
    user: UserContext = Depends(get_current_user),
):
    try:
        contacts = await store.list_contacts(db, user.user_id)
    except store.PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to load contacts")
    return [ContactOut.from_model(c) for c in contacts]


@router.post("", response_model=ContactOut, status_code=201)
async def create_contact(
    payload: ContactCreate,
    db: AsyncSession = Depends(get_db),
    user: UserContext = Depends(get_current_user),
):
    try:
        phone_number = normalize_phone(payload.phone_number)
    except InvalidPhoneNumber as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        contact = await store.create_contact(
            db, phone_number, user.user_id,
            name=payload.name, avatar_url=payload.avatar_url,
        )
    except store.ContactExists:
        raise HTTPException(status_code=409, detail="Contact already exists")
    except store.PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to create contact")
    return ContactOut.from_model(contact)


@router.get("/{contact_id}", response_model=ContactOut)
async def get_contact(
    contact_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: UserContext = Depends(get_current_user),
):
    try:
        contact = await store.get_contact(db, contact_id, user.user_id)
    except store.PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to load contact")
    if contact is None:
        raise HTTPException(status_code=404, detail="Contact not found")
    return ContactOut.from_model(contact)
