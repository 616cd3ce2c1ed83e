"""
Database models - import all models here so Alembic can discover them.
"""
from smsdash.models.contact import Contact
from smsdash.models.message import Message
from smsdash.models.inbound_settings import InboundSettings
from smsdash.models.messaging_profile import MessagingProfile

__all__ = [
    "Contact",
    "Message",
    "InboundSettings",
    "MessagingProfile",
]
