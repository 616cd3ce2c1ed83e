"""
Messaging profile - the sender number outbound messages go out from.
One profile per user is active at a time; the API keeps that true, not the schema.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Boolean, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from smsdash.database import Base


class MessagingProfile(Base):
    __tablename__ = "messaging_profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    profile_id: Mapped[str] = mapped_column(String(255), nullable=False)  # sender phone number
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    webhook_url: Mapped[Optional[str]] = mapped_column(String(1024))
    webhook_failover_url: Mapped[Optional[str]] = mapped_column(String(1024))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    extra_data: Mapped[Optional[dict]] = mapped_column("metadata", JSONB, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_messaging_profiles_user_active", "user_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<MessagingProfile {self.name} active={self.is_active}>"
