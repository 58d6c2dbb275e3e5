"""Shared pytest fixtures.

Tests run against a file-backed SQLite database (aiosqlite) created per
test from the ORM metadata, so the suite needs no running PostgreSQL.
Environment defaults are set before creditflow is imported because
Settings is instantiated at import time.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault(
    "AUTH_SECRET", "test-secret-key-that-is-at-least-32-characters-long"
)
os.environ.setdefault("AUTH_COOKIE_SECURE", "false")
os.environ.setdefault("PAYMENT_GATEWAY", "mock")
os.environ.setdefault("PROVISIONING_PROVIDER", "mock")
os.environ.setdefault("MERCADOPAGO_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("TASK_WORKER_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import uuid  # noqa: E402
from collections.abc import AsyncGenerator, Iterator  # noqa: E402
from datetime import UTC, datetime, timedelta  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from creditflow.core.config import settings  # noqa: E402
from creditflow.models import Base, CreditLedger, CreditPlan, User  # noqa: E402
from creditflow.providers import factory  # noqa: E402
from creditflow.providers.payments.mock_adapter import MockPaymentGateway  # noqa: E402

# Test user ID (consistent across tests for predictable auth)
TEST_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
USER_B_ID = uuid.UUID("00000000-0000-0000-0000-000000000099")

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = settings.auth_secret.get_secret_value()
TEST_WEBHOOK_SECRET = settings.mercadopago_webhook_secret.get_secret_value()


def create_test_jwt(
    user_id: uuid.UUID = TEST_USER_ID,
    *,
    secret: str = TEST_AUTH_SECRET,
    expires_delta: timedelta | None = None,
    iat: datetime | None = None,
) -> str:
    """Create a signed JWT for test authentication.

    Args:
        user_id: User UUID to encode in the sub claim.
        secret: Signing secret (must match settings.auth_secret in tests).
        expires_delta: Time until expiration. Defaults to 1 hour.
        iat: Issued-at time. Defaults to now.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or timedelta(hours=1)),
        "iat": iat or now,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Fresh SQLite database with every table created."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine (for worker/processor)."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# Data helpers
# =============================================================================


async def create_user(
    db: AsyncSession,
    *,
    user_id: uuid.UUID | None = None,
    email: str | None = None,
    credits: int | None = 0,
) -> User:
    """Insert a user and (unless credits is None) a ledger row.

    Args:
        db: Session to insert with; committed before returning.
        user_id: Fixed id, random when omitted.
        email: Email, derived from the id when omitted.
        credits: Initial total/available credits. None skips the ledger row.
    """
    user_id = user_id or uuid.uuid4()
    user = User(id=user_id, email=email or f"{user_id.hex[:12]}@example.com")
    db.add(user)
    if credits is not None:
        db.add(
            CreditLedger(
                user_id=user_id,
                total_credits=credits,
                used_credits=0,
                available_credits=credits,
            )
        )
    await db.commit()
    return user


async def create_plan(
    db: AsyncSession,
    *,
    name: str = "Iniciante",
    credits: int = 10,
    price_in_cents: int = 2990,
    is_active: bool = True,
    display_order: int = 1,
) -> CreditPlan:
    plan = CreditPlan(
        name=name,
        credits=credits,
        price_in_cents=price_in_cents,
        is_active=is_active,
        display_order=display_order,
    )
    db.add(plan)
    await db.commit()
    return plan


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """User with 10 available credits."""
    return await create_user(
        db_session, user_id=TEST_USER_ID, email="test@example.com", credits=10
    )


@pytest_asyncio.fixture
async def user_b(db_session: AsyncSession) -> User:
    """Second user for cross-tenant isolation tests."""
    return await create_user(
        db_session, user_id=USER_B_ID, email="userb@example.com", credits=5
    )


@pytest_asyncio.fixture
async def starter_plan(db_session: AsyncSession) -> CreditPlan:
    return await create_plan(db_session)


# =============================================================================
# Providers
# =============================================================================


@pytest.fixture
def mock_gateway() -> Iterator[MockPaymentGateway]:
    """Mock payment gateway injected into the factory singleton."""
    gateway = MockPaymentGateway()
    factory._payment_gateway = gateway

    yield gateway

    factory.reset_gateways()


# =============================================================================
# API clients
# =============================================================================


def _override_db(session_factory: async_sessionmaker[AsyncSession]):
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return override_get_db


@pytest_asyncio.fixture
async def api_app(session_factory, mock_gateway) -> AsyncGenerator[FastAPI, None]:
    """The app wired to the test database and the mock payment gateway."""
    from creditflow.api.deps import get_gateway
    from creditflow.core.database import get_db
    from creditflow.main import app

    app.dependency_overrides[get_db] = _override_db(session_factory)
    app.dependency_overrides[get_gateway] = lambda: mock_gateway

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def unauthenticated_client(api_app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client without an auth cookie."""
    transport = ASGITransport(app=api_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def client(
    api_app,
    test_user,  # noqa: ARG001 - ensures user exists
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client authenticated as TEST_USER_ID."""
    transport = ASGITransport(app=api_app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        cookies={settings.auth_cookie_name: create_test_jwt(TEST_USER_ID)},
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def client_user_b(
    api_app,
    user_b,  # noqa: ARG001 - ensures user_b exists in DB
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client authenticated as User B for cross-tenant tests."""
    transport = ASGITransport(app=api_app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        cookies={settings.auth_cookie_name: create_test_jwt(USER_B_ID)},
    ) as ac:
        yield ac


# =============================================================================
# Autouse Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable rate limiting during tests.

    Rate limiting is tested separately; disable for other tests to avoid
    flaky failures from rate limit triggers.
    """
    from creditflow.core.rate_limiting import limiter

    original_enabled = limiter.enabled
    limiter.enabled = False

    yield

    limiter.enabled = original_enabled
