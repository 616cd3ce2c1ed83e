"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks all external services.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB
from smsdash.context import AppContext
from smsdash.database import Base
from smsdash.schemas.api_responses import UserContext
from smsdash.services.broadcaster import Broadcaster
import smsdash.models  # noqa: F401  (registers all tables on Base.metadata)
from tests.helpers import USER_ID, RecordingHandle, make_settings


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


@pytest.fixture
async def db():
    """In-memory SQLite database for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def user():
    return UserContext(user_id=USER_ID, email="owner@example.com", name="Owner")


@pytest.fixture
def broadcaster():
    return Broadcaster()


@pytest.fixture
def user_handle(broadcaster):
    """A live connection for the test user, registered on the broadcaster."""
    handle = RecordingHandle()
    broadcaster.register("client-user", handle, USER_ID)
    return handle


@pytest.fixture
def mock_carrier():
    """Stand-in TelnyxClient - prevents real Telnyx calls in tests."""
    carrier = MagicMock()
    carrier.provider = "telnyx"
    carrier.is_configured = True
    carrier.send_message = AsyncMock(return_value={"id": "out-msg-1", "to": [{"status": "queued"}]})
    return carrier


@pytest.fixture
def ctx(settings, broadcaster, mock_carrier):
    return AppContext(settings=settings, broadcaster=broadcaster, carrier=mock_carrier)


@pytest.fixture
def mock_redis():
    """Mock for async Redis - prevents real Redis calls in tests."""
    with patch("smsdash.utils.dedup.get_redis") as mock:
        redis_mock = AsyncMock()
        redis_mock.set = AsyncMock(return_value=True)
        redis_mock.ping = AsyncMock(return_value=True)
        mock.return_value = redis_mock
        yield redis_mock



@pytest.fixture
def app(ctx, db):
    """App wired to the test context and the test session."""
    from smsdash.database import get_db
    from smsdash.main import create_app

    application = create_app(ctx.settings)
    application.state.context = ctx

    async def _test_db():
        yield db

    application.dependency_overrides[get_db] = _test_db
    return application


@pytest.fixture
async def client(app):
    """httpx client talking to the app in-process (lifespan not run)."""
    import httpx

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
