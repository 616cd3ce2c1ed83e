"""
smsdash - single-user SMS/MMS dashboard backend.
Main FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from smsdash.config import Settings, get_settings
from smsdash.context import AppContext
from smsdash.api.router import api_router
from smsdash.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("smsdash")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    ctx: AppContext = app.state.context
    settings = ctx.settings
    logger.info("smsdash starting up (env=%s)", settings.app_env)

    # Security warnings
    if not settings.telnyx_api_key:
        logger.warning("TELNYX_API_KEY not set - outbound sends and auto-replies will fail.")
    if not settings.telnyx_public_key:
        logger.warning(
            "TELNYX_PUBLIC_KEY not set - Telnyx webhook signatures will not be verified."
        )

    # Initialize Sentry if configured
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    yield

    # Close open streams so their responses finish
    open_streams = ctx.broadcaster.connection_count()
    ctx.broadcaster.close_all()

    from smsdash.utils.dedup import close_redis
    from smsdash.database import dispose_engine
    await close_redis()
    await dispose_engine()
    logger.info("smsdash shutdown complete - closed %d live streams", open_streams)


def _cors_origins(settings: Settings) -> list[str]:
    origins = ["http://localhost:3000", "http://localhost:5173", settings.app_base_url]
    origins.extend(o.strip() for o in settings.allowed_origins.split(",") if o.strip())
    return origins


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Application factory."""
    settings = settings or get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="smsdash",
        description="SMS/MMS messaging dashboard backend",
        version="1.0.0",
        lifespan=lifespan,
    )
    application.state.context = AppContext.from_settings(settings)

    # CORS - allow dashboard origin
    application.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(settings),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization", "Content-Type", "X-Correlation-ID",
            "Accept", "Origin", "X-Requested-With",
        ],
    )

    # Correlation ID middleware (must be added AFTER CORS so it runs on every request)
    application.add_middleware(CorrelationIdMiddleware)

    # Include all routes
    application.include_router(api_router)

    return application


app = create_app()
