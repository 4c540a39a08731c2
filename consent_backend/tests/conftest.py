"""
Test fixtures for consent backend tests.

Provides:
- In-memory SQLite database for isolated testing
- Async test client with proper session management
- Signed identity-provider tokens for authenticated requests
"""
# IMPORTANT: Set environment variables BEFORE any other imports
import os

TEST_JWT_SECRET = "test_jwt_secret_with_enough_length_for_hs256"
TEST_ADMIN_SECRET = "test_admin_secret"

os.environ["JWT_SECRET"] = TEST_JWT_SECRET
os.environ["ADMIN_SECRET"] = TEST_ADMIN_SECRET
os.environ["DISABLE_AUTH"] = "false"
os.environ.pop("JWT_AUDIENCE", None)
os.environ.pop("CONSENT_WEBHOOK_URL", None)
os.environ["DEFAULT_POLICY_VERSION"] = "1.0"
# Development mode for tests (disables ALLOWED_ORIGINS requirement)
os.environ["ENVIRONMENT"] = "development"

import pytest
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import jwt
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.pool import StaticPool

from consent_backend.app.core.base import Base
from consent_backend.app.core.constants import PolicyType
from consent_backend.app.main import app
from consent_backend.app.api.deps import get_session, get_events
from consent_backend.app.models.policy import PolicyVersion
from consent_backend.app.services.consents import ConsentTracker
from consent_backend.app.services.notifications import ConsentEventBus
from consent_backend.app.services.policies import PolicyService


# Test database URL - SQLite in-memory
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_USER_ID = "3f1c9a52-7d4e-4b8a-9a61-2c0f5e8d1b77"


@pytest.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Fresh in-memory database per test.
    StaticPool keeps the single connection (and so the data) alive.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Database session for service-level tests and fixtures."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def event_bus() -> ConsentEventBus:
    """Isolated event bus (the process-wide one is not touched by tests)."""
    return ConsentEventBus()


@pytest.fixture
def received_events(event_bus: ConsentEventBus) -> list:
    """Events published on event_bus during the test."""
    events = []

    async def collect(event):
        events.append(event)

    event_bus.subscribe(collect)
    return events


@pytest.fixture
def policy_service(test_session: AsyncSession, event_bus: ConsentEventBus) -> PolicyService:
    return PolicyService(test_session, events=event_bus)


@pytest.fixture
def tracker(test_session: AsyncSession, event_bus: ConsentEventBus, policy_service: PolicyService) -> ConsentTracker:
    return ConsentTracker(test_session, events=event_bus, policies=policy_service)


@pytest.fixture
async def client(
    session_factory: async_sessionmaker,
    event_bus: ConsentEventBus,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client for testing API endpoints.
    Overrides database and event bus dependencies.

    Note: each API call gets a fresh session, separate from test_session
    used for fixtures.
    """
    async def override_get_session():
        async with session_factory() as session:
            yield session

    async def override_get_events():
        return event_bus

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_events] = override_get_events

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# --- Test Data Factories ---

@pytest.fixture
async def current_policies(test_session: AsyncSession) -> dict:
    """Publish version 1.0 of both policies as current."""
    published = {}
    for policy_type in PolicyType:
        row = PolicyVersion(
            policy_type=policy_type,
            version="1.0",
            published_at=datetime.now(timezone.utc) - timedelta(days=30),
            is_current=True,
        )
        test_session.add(row)
        published[policy_type] = row
    await test_session.commit()
    return published


# --- Identity provider helpers ---

def make_access_token(
    user_id: str = TEST_USER_ID,
    email: Optional[str] = "user@example.com",
    expires_in: timedelta = timedelta(hours=1),
    secret: str = TEST_JWT_SECRET,
    **claims,
) -> str:
    """Sign an access token the way the identity provider does."""
    payload = {
        "sub": user_id,
        "email": email,
        "role": "authenticated",
        "exp": datetime.now(timezone.utc) + expires_in,
        **claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def get_auth_header_for_user(user_id: str, **kwargs) -> dict:
    """Generate auth header for any user ID."""
    return {"Authorization": f"Bearer {make_access_token(user_id=user_id, **kwargs)}"}


@pytest.fixture
def auth_header() -> dict:
    """Auth header for the default test user."""
    return get_auth_header_for_user(TEST_USER_ID)


@pytest.fixture
def admin_header() -> dict:
    return {"X-Admin-Token": TEST_ADMIN_SECRET}
