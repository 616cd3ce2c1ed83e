"""
Contact model - one row per phone number per dashboard user.
Created on first inbound message from an unknown number, or via the contacts API.
Never deleted automatically.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, DateTime, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from smsdash.database import Base


class Contact(Base):
    __tablename__ = "contacts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)  # canonical +<digits>
    name: Mapped[Optional[str]] = mapped_column(String(255))
    avatar_url: Mapped[Optional[str]] = mapped_column(String(1024))
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    messages: Mapped[list["Message"]] = relationship(
        back_populates="contact", lazy="select", order_by="Message.created_at"
    )

    __table_args__ = (
        UniqueConstraint("phone_number", "user_id", name="uq_contacts_phone_user"),
        Index("ix_contacts_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        masked = self.phone_number[:6] + "***" if self.phone_number else "unknown"
        return f"<Contact {masked} user={self.user_id}>"
