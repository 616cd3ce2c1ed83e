"""
Telnyx webhook payload schemas.

The envelope is parsed once, then parse_carrier_event() maps event_type to one
typed variant. Event types we do not act on become UnhandledEvent so the
webhook can acknowledge them without touching the database.
"""
from typing import Any, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator


class PhoneEndpoint(BaseModel):
    """One side of a message (from, or a single recipient)."""
    model_config = ConfigDict(extra="allow")

    phone_number: str = ""
    carrier: Optional[str] = None
    line_type: Optional[str] = None
    status: Optional[str] = None


class MediaItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: str
    content_type: Optional[str] = None
    size: Optional[int] = None


class CarrierErrorDetail(BaseModel):
    model_config = ConfigDict(extra="allow")

    code: Optional[Union[str, int]] = None
    title: Optional[str] = None
    detail: Optional[str] = None


def _as_endpoint(value: Any) -> Any:
    if isinstance(value, str):
        return {"phone_number": value}
    return value


class TelnyxMessagePayload(BaseModel):
    """Carrier message record carried in data.payload for message.* events."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    direction: Optional[str] = None
    type: Optional[str] = None  # SMS, MMS
    from_: Optional[PhoneEndpoint] = Field(default=None, alias="from")
    to: Optional[PhoneEndpoint] = None
    text: Optional[str] = None
    media: list[MediaItem] = Field(default_factory=list)
    errors: list[CarrierErrorDetail] = Field(default_factory=list)
    status: Optional[str] = None

    # Timestamps are kept as the carrier's ISO strings and copied into metadata
    sent_at: Optional[str] = None
    completed_at: Optional[str] = None
    delivered_at: Optional[str] = None
    failed_at: Optional[str] = None
    finalized_at: Optional[str] = None
    failure_reason: Optional[str] = None

    @field_validator("from_", mode="before")
    @classmethod
    def _coerce_sender(cls, value: Any) -> Any:
        return _as_endpoint(value)

    @field_validator("to", mode="before")
    @classmethod
    def _first_recipient(cls, value: Any) -> Any:
        # Telnyx sends a list of recipients; the dashboard only ever has one
        if isinstance(value, list):
            return _as_endpoint(value[0]) if value else None
        return _as_endpoint(value)

    @field_validator("media", "errors", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return value or []

    @property
    def sender_number(self) -> str:
        return self.from_.phone_number if self.from_ else ""

    @property
    def recipient_number(self) -> str:
        return self.to.phone_number if self.to else ""

    @property
    def media_urls(self) -> list[str]:
        return [item.url for item in self.media]

    @property
    def error_detail(self) -> Optional[str]:
        """First carrier error as a human-readable string, if any."""
        for err in self.errors:
            if err.detail or err.title:
                return err.detail or err.title
        return self.failure_reason


class MessagingProfilePayload(BaseModel):
    """Payload for messaging_profile.updated."""
    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None
    phone_number: Optional[str] = None
    webhook_url: Optional[str] = None


class WebhookEnvelopeData(BaseModel):
    model_config = ConfigDict(extra="allow")

    event_type: str
    id: str
    occurred_at: Optional[str] = None
    payload: dict = Field(default_factory=dict)


class WebhookEnvelope(BaseModel):
    """Outer body of every Telnyx webhook: {"data": {...}}."""
    data: WebhookEnvelopeData


# Event type -> stored message status
STATUS_BY_EVENT = {
    "message.sent": "sent",
    "message.delivered": "delivered",
    "message.delivery_failed": "failed",
}


class MessageReceivedEvent(BaseModel):
    event_type: Literal["message.received"] = "message.received"
    envelope_id: str
    occurred_at: Optional[str] = None
    message: TelnyxMessagePayload


class MessageStatusEvent(BaseModel):
    event_type: Literal["message.sent", "message.delivered", "message.delivery_failed"]
    envelope_id: str
    occurred_at: Optional[str] = None
    message: TelnyxMessagePayload

    @property
    def status(self) -> str:
        return STATUS_BY_EVENT[self.event_type]


class MessageFinalizedEvent(BaseModel):
    event_type: Literal["message.finalized"] = "message.finalized"
    envelope_id: str
    occurred_at: Optional[str] = None
    message: TelnyxMessagePayload


class ProfileUpdatedEvent(BaseModel):
    event_type: Literal["messaging_profile.updated"] = "messaging_profile.updated"
    envelope_id: str
    occurred_at: Optional[str] = None
    profile: MessagingProfilePayload


class UnhandledEvent(BaseModel):
    event_type: str
    envelope_id: str
    occurred_at: Optional[str] = None


CarrierEvent = Union[
    MessageReceivedEvent,
    MessageStatusEvent,
    MessageFinalizedEvent,
    ProfileUpdatedEvent,
    UnhandledEvent,
]


def parse_carrier_event(envelope: WebhookEnvelope) -> CarrierEvent:
    """
    Map an envelope to its typed event.
    Raises pydantic.ValidationError if a recognized event has a malformed payload.
    """
    data = envelope.data
    common = {"envelope_id": data.id, "occurred_at": data.occurred_at}

    if data.event_type == "message.received":
        return MessageReceivedEvent(
            message=TelnyxMessagePayload.model_validate(data.payload), **common
        )
    if data.event_type in STATUS_BY_EVENT:
        return MessageStatusEvent(
            event_type=data.event_type,
            message=TelnyxMessagePayload.model_validate(data.payload),
            **common,
        )
    if data.event_type == "message.finalized":
        return MessageFinalizedEvent(
            message=TelnyxMessagePayload.model_validate(data.payload), **common
        )
    if data.event_type == "messaging_profile.updated":
        return ProfileUpdatedEvent(
            profile=MessagingProfilePayload.model_validate(data.payload), **common
        )
    return UnhandledEvent(event_type=data.event_type, **common)
