"""Shared test fixtures — async SQLite in-memory DB + test client."""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

# Import all models so metadata is populated
import app.models  # noqa: F401, E402
from app.core.cache import settings_cache  # noqa: E402
from app.core.database import get_session  # noqa: E402
from app.main import app  # noqa: E402
from app.services.billing import get_billing_gateway  # noqa: E402
from app.services.feed import FeedBus, get_feed_bus  # noqa: E402
from app.services.platform_settings import StaticSettingsProvider  # noqa: E402
from tests.fakes import FakeBillingGateway  # noqa: E402


@pytest.fixture(scope="session")
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture(scope="session")
def test_session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest.fixture
def billing() -> FakeBillingGateway:
    return FakeBillingGateway()


@pytest.fixture
def settings_provider() -> StaticSettingsProvider:
    return StaticSettingsProvider({"member_monthly_price_cents": 999, "default_monthly_limit": 100})


@pytest.fixture
def feed_bus() -> FeedBus:
    return FeedBus()


@pytest.fixture
async def client(session, billing, feed_bus) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB session, billing and feed overrides."""

    async def _override_session():
        yield session

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_billing_gateway] = lambda: billing
    app.dependency_overrides[get_feed_bus] = lambda: feed_bus
    settings_cache.clear()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    settings_cache.clear()
