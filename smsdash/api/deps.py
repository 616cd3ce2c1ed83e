"""
Shared FastAPI dependencies - app context, services, and the current user.
"""
from fastapi import Depends, Request

from smsdash.config import Settings
from smsdash.context import AppContext
from smsdash.schemas.api_responses import UserContext
from smsdash.services.broadcaster import Broadcaster


def get_app_context(request: Request) -> AppContext:
    return request.app.state.context


def get_app_settings(ctx: AppContext = Depends(get_app_context)) -> Settings:
    return ctx.settings


def get_broadcaster(ctx: AppContext = Depends(get_app_context)) -> Broadcaster:
    return ctx.broadcaster


def get_current_user(settings: Settings = Depends(get_app_settings)) -> UserContext:
    """The dashboard is single-user; the identity comes from configuration."""
    return UserContext(
        user_id=settings.default_user_id,
        email=settings.default_user_email,
        name=settings.default_user_name,
    )
