"""
Per-user inbound policy: blocklist, keyword filters, business hours, auto-reply.
Exactly one row per user. Created lazily with defaults by the first inbound message.
"""
import uuid
from datetime import datetime, time, timezone
from typing import Optional
from sqlalchemy import String, Text, Boolean, DateTime, Time
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from smsdash.database import Base

# Weekdays use 0=Sunday .. 6=Saturday
DEFAULT_BUSINESS_DAYS = [1, 2, 3, 4, 5]


class InboundSettings(Base):
    __tablename__ = "inbound_settings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    auto_reply_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_reply_message: Mapped[Optional[str]] = mapped_column(Text)

    business_hours_only: Mapped[bool] = mapped_column(Boolean, default=False)
    business_hours_start: Mapped[time] = mapped_column(Time, default=time(9, 0))
    business_hours_end: Mapped[time] = mapped_column(Time, default=time(17, 0))
    business_days: Mapped[list] = mapped_column(
        JSONB, default=lambda: list(DEFAULT_BUSINESS_DAYS)
    )

    keyword_filters: Mapped[list] = mapped_column(JSONB, default=list)
    blocked_numbers: Mapped[list] = mapped_column(JSONB, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return (
            f"<InboundSettings user={self.user_id} "
            f"auto_reply={self.auto_reply_enabled} hours_only={self.business_hours_only}>"
        )
