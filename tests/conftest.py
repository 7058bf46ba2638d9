"""
Global test fixtures and configuration.

This module provides base fixtures for all tests:
- Database engine on a per-test SQLite file (separate sessions see each other's commits)
- Database session and session factory
- Redis client (in-memory fake)
- Notification dispatcher that records codes instead of sending e-mail
- HTTP client with dependency overrides
- Base data fixtures (customer, admin, auth headers)
"""

import os
import pytest
from typing import AsyncGenerator
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from fakeredis import FakeAsyncRedis

# Set test environment variables BEFORE importing app
os.environ["MODE"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["SMTP_USERNAME"] = ""
os.environ["SENTRY_DSN"] = ""
os.environ["TRUSTED_PROXY_HOPS"] = "1"

from app.main import app
from app.api.dependencies import get_db, get_dispatcher, get_redis
from app.db.base import Base
from app.services.auth_orchestrator import AuthOrchestrator, ClientContext

TEST_IP = "203.0.113.10"

# ==================== Notifications ====================

class FakeDispatcher:
    """
    Stand-in for NotificationDispatcher.

    Keeps every message in memory so tests can read the one-time code a user
    would have received. Set `fail = True` to simulate an undeliverable e-mail.
    """

    def __init__(self):
        self.sent = []
        self.confirmations = []
        self.fail = False

    async def send(self, email, purpose, payload):
        if self.fail:
            return False
        self.sent.append({"email": email, "purpose": purpose, "payload": dict(payload)})
        return True

    def queue_confirmation(self, email, kind, payload):
        self.confirmations.append({"email": email, "kind": kind, "payload": dict(payload)})
        return True

    def last_code(self, email, purpose=None):
        for message in reversed(self.sent):
            if message["email"] == email.lower() and purpose in (None, message["purpose"]):
                return message["payload"]["code"]
        raise AssertionError(f"No code was sent to {email}")


# ==================== Database ====================

@pytest.fixture(scope="function")
async def test_engine(tmp_path):
    """
    Create a test database engine backed by a throwaway SQLite file.

    A file (not :memory:) lets several sessions work concurrently, which the
    race tests rely on.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
        echo=False  # Set to True for SQL debugging
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ==================== Redis ====================

@pytest.fixture(scope="function")
async def redis_client() -> AsyncGenerator[FakeAsyncRedis, None]:
    """
    Create fake Redis client (in-memory) for each test.
    """
    redis = FakeAsyncRedis()
    yield redis
    await redis.flushall()
    await redis.aclose()


# ==================== Services ====================

@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def ctx() -> ClientContext:
    return ClientContext(ip_address=TEST_IP, user_agent="pytest")


@pytest.fixture
def auth_service(db_session, dispatcher) -> AuthOrchestrator:
    return AuthOrchestrator(db_session, dispatcher)


# ==================== FastAPI Client ====================

@pytest.fixture(scope="function")
async def client(
    session_factory,
    redis_client: FakeAsyncRedis,
    dispatcher: FakeDispatcher,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create HTTP client for testing FastAPI endpoints.

    Every request gets its own session, as in production.
    """

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        yield redis_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-Forwarded-For": TEST_IP},
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ==================== Base Data Fixtures ====================

@pytest.fixture
async def customer(db_session: AsyncSession):
    """Customer account with password "Password123!"."""
    from tests.factories.user import UserFactory
    user = await UserFactory.create_async(db_session, email="customer@gmail.com", username="customer_one")
    await db_session.commit()
    return user


@pytest.fixture
async def admin(db_session: AsyncSession):
    """Staff admin with password "AdminPass123!" and no trusted device."""
    from tests.factories.admin import AdminFactory
    admin = await AdminFactory.create_async(db_session, email="manager@cafe.com", role="manager")
    await db_session.commit()
    return admin


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer_headers(customer):
    from app.services.token_issuer import TokenIssuer
    return bearer(TokenIssuer().issue(customer).token)


@pytest.fixture
def admin_headers(admin):
    from app.services.token_issuer import TokenIssuer
    return bearer(TokenIssuer().issue(admin).token)
