"""Initial schema - contacts, messages, inbound settings, messaging profiles.

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Contacts
    op.create_table(
        "contacts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("phone_number", sa.String(20), nullable=False),
        sa.Column("name", sa.String(255)),
        sa.Column("avatar_url", sa.String(1024)),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("phone_number", "user_id", name="uq_contacts_phone_user"),
    )
    op.create_index("ix_contacts_user_id", "contacts", ["user_id"])

    # Messages
    op.create_table(
        "messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("telnyx_message_id", sa.String(255), unique=True),
        sa.Column(
            "contact_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("contacts.id"), nullable=False,
        ),
        sa.Column("direction", sa.String(10), nullable=False),
        sa.Column("message_type", sa.String(5), nullable=False, server_default="SMS"),
        sa.Column("content", sa.Text),
        sa.Column("media_urls", postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("from_number", sa.String(20), nullable=False),
        sa.Column("to_number", sa.String(20), nullable=False),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("metadata", postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("direction IN ('inbound', 'outbound')", name="ck_messages_direction"),
        sa.CheckConstraint("message_type IN ('SMS', 'MMS')", name="ck_messages_type"),
        sa.CheckConstraint(
            "status IN ('pending', 'sent', 'delivered', 'failed')", name="ck_messages_status"
        ),
    )
    op.create_index("ix_messages_user_id", "messages", ["user_id"])
    op.create_index("ix_messages_contact_id", "messages", ["contact_id"])
    op.create_index("ix_messages_created_at", "messages", ["created_at"])

    # Inbound settings (one row per user)
    op.create_table(
        "inbound_settings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(100), nullable=False, unique=True),
        sa.Column("auto_reply_enabled", sa.Boolean, server_default=sa.false()),
        sa.Column("auto_reply_message", sa.Text),
        sa.Column("business_hours_only", sa.Boolean, server_default=sa.false()),
        sa.Column("business_hours_start", sa.Time, server_default="09:00:00"),
        sa.Column("business_hours_end", sa.Time, server_default="17:00:00"),
        sa.Column("business_days", postgresql.JSONB, server_default=sa.text("'[1, 2, 3, 4, 5]'::jsonb")),
        sa.Column("keyword_filters", postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column("blocked_numbers", postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Messaging profiles
    op.create_table(
        "messaging_profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("profile_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("webhook_url", sa.String(1024)),
        sa.Column("webhook_failover_url", sa.String(1024)),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("metadata", postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_messaging_profiles_user_active", "messaging_profiles", ["user_id", "is_active"]
    )


def downgrade() -> None:
    op.drop_table("messaging_profiles")
    op.drop_table("inbound_settings")
    op.drop_index("ix_messages_created_at", table_name="messages")
    op.drop_index("ix_messages_contact_id", table_name="messages")
    op.drop_index("ix_messages_user_id", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_contacts_user_id", table_name="contacts")
    op.drop_table("contacts")
