"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks Redis and all outbound providers.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_BASE_URL", "https://app.rankitpro.test")

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB

from reviewflow.database import Base
import reviewflow.models  # noqa: F401  (registers tables on Base.metadata)


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


@pytest.fixture(autouse=True)
def mock_redis():
    """Mock for async Redis - locks, dedup and heartbeats never touch a real server."""
    redis_mock = AsyncMock()
    redis_mock.set = AsyncMock(return_value=True)
    redis_mock.get = AsyncMock(return_value=None)
    redis_mock.ping = AsyncMock(return_value=True)
    redis_mock.eval = AsyncMock(return_value=1)
    with patch("reviewflow.utils.dedup.get_redis", new_callable=AsyncMock, return_value=redis_mock):
        yield redis_mock


@pytest.fixture
def session_factory_mock(db):
    """Stand-in for async_session_factory: every session it opens is the test session."""
    session_cm = AsyncMock()
    session_cm.__aenter__ = AsyncMock(return_value=db)
    session_cm.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=session_cm)


@pytest.fixture
def mock_dispatch():
    """Mock for the scheduler's dispatch_message - prevents real SendGrid/Twilio calls."""
    from reviewflow.services.dispatch import DispatchResult
    with patch("reviewflow.workers.review_scheduler.dispatch_message", new_callable=AsyncMock) as mock:
        mock.return_value = DispatchResult(True, "email", provider_id="sg-test-123")
        yield mock
