"""
Message model - every SMS/MMS sent or received through the dashboard.
Inbound rows are written as "delivered" on webhook receipt; outbound rows as "sent"
once the carrier accepts them. Afterwards only carrier status events touch a row,
matched on telnyx_message_id.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from smsdash.database import Base


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    telnyx_message_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    contact_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contacts.id"), nullable=False
    )

    direction: Mapped[str] = mapped_column(String(10), nullable=False)  # inbound, outbound
    message_type: Mapped[str] = mapped_column(String(5), default="SMS", nullable=False)  # SMS, MMS
    content: Mapped[Optional[str]] = mapped_column(Text)
    media_urls: Mapped[Optional[list]] = mapped_column(JSONB, default=list)
    status: Mapped[str] = mapped_column(
        String(20), default="pending", nullable=False
    )  # pending, sent, delivered, failed

    from_number: Mapped[str] = mapped_column(String(20), nullable=False)
    to_number: Mapped[str] = mapped_column(String(20), nullable=False)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # is_otp, received_at, message_length, has_media, carrier, telnyx_status, ...
    extra_data: Mapped[Optional[dict]] = mapped_column("metadata", JSONB, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    contact: Mapped["Contact"] = relationship(back_populates="messages")

    __table_args__ = (
        Index("ix_messages_user_id", "user_id"),
        Index("ix_messages_contact_id", "contact_id"),
        Index("ix_messages_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Message {self.direction} {self.message_type} status={self.status}>"
