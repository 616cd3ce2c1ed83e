"""
API request/response schemas for the dashboard endpoints and live events.
"""
from datetime import datetime, time
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class UserContext(BaseModel):
    """The dashboard user a request or webhook acts on behalf of."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str
    name: str


class ContactOut(BaseModel):
    id: str
    phone_number: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    user_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, contact) -> "ContactOut":
        return cls(
            id=str(contact.id),
            phone_number=contact.phone_number,
            name=contact.name,
            avatar_url=contact.avatar_url,
            user_id=contact.user_id,
            created_at=contact.created_at,
            updated_at=contact.updated_at,
        )


class MessageOut(BaseModel):
    id: str
    telnyx_message_id: Optional[str] = None
    contact_id: str
    direction: str
    message_type: str
    content: Optional[str] = None
    media_urls: list[str] = Field(default_factory=list)
    status: str
    from_number: str
    to_number: str
    user_id: str
    metadata: dict = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    contact: Optional[ContactOut] = None

    @classmethod
    def from_model(cls, message, contact=None) -> "MessageOut":
        """Build from a Message row. Pass contact to embed it (already loaded)."""
        return cls(
            id=str(message.id),
            telnyx_message_id=message.telnyx_message_id,
            contact_id=str(message.contact_id),
            direction=message.direction,
            message_type=message.message_type,
            content=message.content,
            media_urls=list(message.media_urls or []),
            status=message.status,
            from_number=message.from_number,
            to_number=message.to_number,
            user_id=message.user_id,
            metadata=dict(message.extra_data or {}),
            created_at=message.created_at,
            updated_at=message.updated_at,
            contact=ContactOut.from_model(contact) if contact is not None else None,
        )


class MessageListResponse(BaseModel):
    messages: list[MessageOut]
    total: int


class SendMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    to: str
    from_: Optional[str] = Field(default=None, alias="from")
    text: Optional[str] = None
    media_urls: list[str] = Field(default_factory=list)


class SendMessageResponse(BaseModel):
    success: bool = True
    message: MessageOut
    telnyx_message_id: str


class ContactCreate(BaseModel):
    phone_number: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None


class InboundSettingsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    auto_reply_enabled: bool = False
    auto_reply_message: Optional[str] = None
    business_hours_only: bool = False
    business_hours_start: time
    business_hours_end: time
    business_days: list[int] = Field(default_factory=list)
    keyword_filters: list[str] = Field(default_factory=list)
    blocked_numbers: list[str] = Field(default_factory=list)


class InboundSettingsUpdate(BaseModel):
    """Partial update - only fields that are set get written."""
    auto_reply_enabled: Optional[bool] = None
    auto_reply_message: Optional[str] = None
    business_hours_only: Optional[bool] = None
    business_hours_start: Optional[time] = None
    business_hours_end: Optional[time] = None
    business_days: Optional[list[int]] = None
    keyword_filters: Optional[list[str]] = None
    blocked_numbers: Optional[list[str]] = None


class MessagingProfileOut(BaseModel):
    id: str
    profile_id: str
    name: str
    webhook_url: Optional[str] = None
    webhook_failover_url: Optional[str] = None
    is_active: bool
    user_id: str

    @classmethod
    def from_model(cls, profile) -> "MessagingProfileOut":
        return cls(
            id=str(profile.id),
            profile_id=profile.profile_id,
            name=profile.name,
            webhook_url=profile.webhook_url,
            webhook_failover_url=profile.webhook_failover_url,
            is_active=bool(profile.is_active),
            user_id=profile.user_id,
        )


class MessagingProfileCreate(BaseModel):
    profile_id: str
    name: str
    webhook_url: Optional[str] = None
    webhook_failover_url: Optional[str] = None


class MessagingProfileSetup(BaseModel):
    phone_number: str


class ProcessingOutcome(BaseModel):
    """
    What the inbound pipeline did with one webhook event.

    stored   - new inbound message persisted and broadcast
    dropped  - filtered out by policy (bad number, blocklist, keyword, hours)
    updated  - status/metadata applied to an existing message or profile
    ignored  - nothing to do (unknown carrier id, unhandled event type)
    skipped  - carrier id already stored, delivery was a retry
    """
    status: Literal["stored", "dropped", "updated", "ignored", "skipped"]
    reason: Optional[str] = None
    message_id: Optional[str] = None
    auto_reply: Optional[Literal["sent", "failed"]] = None
