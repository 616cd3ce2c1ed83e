"""
Persistence gateway - async CRUD over contacts, messages, inbound settings,
and messaging profiles.

Lookups return None when nothing matches. Only connectivity and constraint
failures raise, as PersistenceError. Writes flush but do not commit; the caller
owns the transaction.
"""
import functools
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from smsdash.models.contact import Contact
from smsdash.models.inbound_settings import InboundSettings
from smsdash.models.message import Message
from smsdash.models.messaging_profile import MessagingProfile
from smsdash.utils.phone import mask_phone

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE_LIMIT = 50
MAX_MESSAGE_LIMIT = 500


class PersistenceError(Exception):
    """Database unreachable or a constraint was violated."""


class ContactExists(PersistenceError):
    """A contact with this phone number already exists for the user."""


def _persistence_errors(func_):
    @functools.wraps(func_)
    async def wrapper(*args, **kwargs):
        try:
            return await func_(*args, **kwargs)
        except PersistenceError:
            raise
        except SQLAlchemyError as e:
            logger.error("%s failed: %s", func_.__name__, str(e))
            raise PersistenceError(str(e)) from e
    return wrapper


def default_contact_name(phone_number: str) -> str:
    return f"Contact {phone_number}"


# --- Contacts ---


@_persistence_errors
async def get_contact_by_phone(
    db: AsyncSession, phone_number: str, user_id: str
) -> Optional[Contact]:
    result = await db.execute(
        select(Contact).where(
            Contact.phone_number == phone_number,
            Contact.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


@_persistence_errors
async def get_contact(
    db: AsyncSession, contact_id: uuid.UUID, user_id: str
) -> Optional[Contact]:
    result = await db.execute(
        select(Contact).where(Contact.id == contact_id, Contact.user_id == user_id)
    )
    return result.scalar_one_or_none()


@_persistence_errors
async def list_contacts(db: AsyncSession, user_id: str) -> list[Contact]:
    result = await db.execute(
        select(Contact)
        .where(Contact.user_id == user_id)
        .order_by(Contact.updated_at.desc())
    )
    return list(result.scalars().all())


@_persistence_errors
async def create_contact(
    db: AsyncSession,
    phone_number: str,
    user_id: str,
    name: Optional[str] = None,
    avatar_url: Optional[str] = None,
) -> Contact:
    """Insert a contact. Raises ContactExists on the (phone_number, user_id) constraint."""
    contact = Contact(
        phone_number=phone_number,
        user_id=user_id,
        name=name or default_contact_name(phone_number),
        avatar_url=avatar_url,
    )
    db.add(contact)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        raise ContactExists(f"Contact already exists: {mask_phone(phone_number)}") from e
    logger.info("Contact created: %s", mask_phone(phone_number))
    return contact


async def get_or_create_contact(
    db: AsyncSession,
    phone_number: str,
    user_id: str,
    name: Optional[str] = None,
) -> Contact:
    """
    Look up a contact by (phone, user) or create it.
    Two webhooks for a brand-new number can race here; the loser hits the
    unique constraint, rolls back, and re-reads the winner's row.
    """
    contact = await get_contact_by_phone(db, phone_number, user_id)
    if contact:
        return contact

    try:
        return await create_contact(db, phone_number, user_id, name=name)
    except ContactExists:
        logger.info("Contact create raced for %s, re-fetching", mask_phone(phone_number))
        contact = await get_contact_by_phone(db, phone_number, user_id)
        if contact is None:
            raise PersistenceError(
                f"Contact for {mask_phone(phone_number)} vanished after unique violation"
            )
        return contact


# --- Messages ---


@_persistence_errors
async def create_message(db: AsyncSession, contact: Contact, **fields) -> Message:
    """Insert a message row attached to contact. fields map to Message columns."""
    message = Message(contact=contact, **fields)
    db.add(message)
    await db.flush()
    return message


@_persistence_errors
async def get_message_by_carrier_id(
    db: AsyncSession, carrier_message_id: str, user_id: Optional[str] = None
) -> Optional[Message]:
    query = (
        select(Message)
        .options(selectinload(Message.contact))
        .where(Message.telnyx_message_id == carrier_message_id)
    )
    if user_id is not None:
        query = query.where(Message.user_id == user_id)
    result = await db.execute(query)
    return result.scalar_one_or_none()


@_persistence_errors
async def update_message_by_carrier_id(
    db: AsyncSession,
    carrier_message_id: str,
    user_id: str,
    status: Optional[str] = None,
    metadata_patch: Optional[dict] = None,
) -> Optional[Message]:
    """
    Apply a status change and/or merge keys into metadata.
    Returns the updated message, or None if no message has that carrier id.
    """
    message = await get_message_by_carrier_id(db, carrier_message_id, user_id)
    if message is None:
        return None

    if status is not None:
        message.status = status
    if metadata_patch:
        # Reassign so the JSONB column is marked dirty
        message.extra_data = {**(message.extra_data or {}), **metadata_patch}
    await db.flush()
    return message


@_persistence_errors
async def list_messages(
    db: AsyncSession,
    user_id: str,
    contact_id: Optional[uuid.UUID] = None,
    limit: int = DEFAULT_MESSAGE_LIMIT,
) -> list[Message]:
    """Newest first, with contact loaded."""
    limit = max(1, min(limit, MAX_MESSAGE_LIMIT))
    query = (
        select(Message)
        .options(selectinload(Message.contact))
        .where(Message.user_id == user_id)
    )
    if contact_id is not None:
        query = query.where(Message.contact_id == contact_id)
    query = query.order_by(Message.created_at.desc()).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


@_persistence_errors
async def count_messages(
    db: AsyncSession, user_id: str, contact_id: Optional[uuid.UUID] = None
) -> int:
    query = select(func.count(Message.id)).where(Message.user_id == user_id)
    if contact_id is not None:
        query = query.where(Message.contact_id == contact_id)
    return (await db.execute(query)).scalar() or 0


# --- Inbound settings ---


@_persistence_errors
async def get_inbound_settings(db: AsyncSession, user_id: str) -> Optional[InboundSettings]:
    result = await db.execute(
        select(InboundSettings).where(InboundSettings.user_id == user_id)
    )
    return result.scalar_one_or_none()


@_persistence_errors
async def create_default_inbound_settings(db: AsyncSession, user_id: str) -> InboundSettings:
    """Insert and commit the default policy row so later rollbacks cannot discard it."""
    settings = InboundSettings(
        user_id=user_id,
        auto_reply_enabled=False,
        auto_reply_message="",
        business_hours_only=False,
        keyword_filters=[],
        blocked_numbers=[],
    )
    db.add(settings)
    await db.commit()
    logger.info("Default inbound settings created for user %s", user_id)
    return settings


async def get_or_create_inbound_settings(db: AsyncSession, user_id: str) -> InboundSettings:
    settings = await get_inbound_settings(db, user_id)
    if settings:
        return settings
    try:
        return await create_default_inbound_settings(db, user_id)
    except PersistenceError as e:
        if not isinstance(e.__cause__, IntegrityError):
            raise
        await db.rollback()
        settings = await get_inbound_settings(db, user_id)
        if settings is None:
            raise
        return settings


@_persistence_errors
async def update_inbound_settings(
    db: AsyncSession, user_id: str, changes: dict
) -> InboundSettings:
    """Apply a partial update, creating the row first if needed."""
    settings = await get_or_create_inbound_settings(db, user_id)
    for field, value in changes.items():
        setattr(settings, field, value)
    await db.flush()
    return settings


# --- Messaging profiles ---


@_persistence_errors
async def list_messaging_profiles(db: AsyncSession, user_id: str) -> list[MessagingProfile]:
    result = await db.execute(
        select(MessagingProfile)
        .where(MessagingProfile.user_id == user_id)
        .order_by(MessagingProfile.created_at.desc())
    )
    return list(result.scalars().all())


@_persistence_errors
async def get_active_messaging_profile(
    db: AsyncSession, user_id: str
) -> Optional[MessagingProfile]:
    result = await db.execute(
        select(MessagingProfile)
        .where(
            MessagingProfile.user_id == user_id,
            MessagingProfile.is_active == True,  # noqa: E712
        )
        .order_by(MessagingProfile.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


@_persistence_errors
async def create_messaging_profile(
    db: AsyncSession,
    user_id: str,
    profile_id: str,
    name: str,
    webhook_url: Optional[str] = None,
    webhook_failover_url: Optional[str] = None,
) -> MessagingProfile:
    """Create a profile and make it the user's only active one."""
    await db.execute(
        update(MessagingProfile)
        .where(MessagingProfile.user_id == user_id)
        .values(is_active=False)
    )
    profile = MessagingProfile(
        user_id=user_id,
        profile_id=profile_id,
        name=name,
        webhook_url=webhook_url,
        webhook_failover_url=webhook_failover_url,
        is_active=True,
    )
    db.add(profile)
    await db.flush()
    logger.info("Messaging profile %s is now active for user %s", name, user_id)
    return profile


@_persistence_errors
async def update_messaging_profile_phone(
    db: AsyncSession,
    user_id: str,
    phone_number: str,
    webhook_url: Optional[str] = None,
    webhook_failover_url: Optional[str] = None,
) -> MessagingProfile:
    """Point the active profile at phone_number, creating a default profile if none is active."""
    profile = await get_active_messaging_profile(db, user_id)
    if profile is None:
        return await create_messaging_profile(
            db,
            user_id=user_id,
            profile_id=phone_number,
            name="Default Messaging Profile",
            webhook_url=webhook_url,
            webhook_failover_url=webhook_failover_url,
        )
    profile.profile_id = phone_number
    if webhook_url:
        profile.webhook_url = webhook_url
    if webhook_failover_url:
        profile.webhook_failover_url = webhook_failover_url
    await db.flush()
    return profile


@_persistence_errors
async def record_profile_webhook(
    db: AsyncSession, profile_id: str, telnyx_profile_id: str
) -> Optional[MessagingProfile]:
    """Stamp the profile matching profile_id with the carrier's update. None if no match."""
    result = await db.execute(
        select(MessagingProfile).where(MessagingProfile.profile_id == profile_id)
    )
    profile = result.scalars().first()
    if profile is None:
        return None
    now = datetime.now(timezone.utc)
    profile.extra_data = {
        **(profile.extra_data or {}),
        "last_webhook_update": now.isoformat(),
        "telnyx_profile_id": telnyx_profile_id,
    }
    profile.updated_at = now
    await db.flush()
    return profile
