"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from smsdash.api.webhooks import router as webhooks_router
from smsdash.api.events import router as events_router
from smsdash.api.messages import router as messages_router
from smsdash.api.contacts import router as contacts_router
from smsdash.api.inbound_settings import router as inbound_settings_router
from smsdash.api.messaging_profiles import router as messaging_profiles_router
from smsdash.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(webhooks_router)
api_router.include_router(events_router)
api_router.include_router(messages_router)
api_router.include_router(contacts_router)
api_router.include_router(inbound_settings_router)
api_router.include_router(messaging_profiles_router)
api_router.include_router(health_router)
