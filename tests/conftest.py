"""Pytest configuration and fixtures for phoneauth tests.

Every test gets a fresh in-memory SQLite database (aiosqlite + StaticPool),
a controllable clock and a delivery gateway that records instead of sending.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app modules
os.environ["ENVIRONMENT"] = "development"  # /otp/send returns the code
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-that-is-long-enough-0123"
os.environ["INTERNAL_API_KEY"] = "i" * 32
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SMS_DEV_MODE"] = "true"
os.environ["SWEEP_INTERVAL_SECONDS"] = "3600"

TEST_INTERNAL_API_KEY = "i" * 32
TEST_PHONE = "9998887777"
CLOCK_START = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = CLOCK_START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingGateway:
    """Delivery gateway that keeps every message instead of sending it."""

    def __init__(self, succeed: bool = True):
        self.sent: list[tuple[str, str]] = []
        self.succeed = succeed

    async def send(self, phone: str, message: str) -> bool:
        self.sent.append((phone, message))
        return self.succeed


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# --- Clock and delivery ---


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def dispatcher(gateway):
    from phoneauth.services.delivery import DeliveryDispatcher

    return DeliveryDispatcher(gateway, timeout=1.0)


# --- Rate Limiter Reset Fixture ---


@pytest.fixture(autouse=True)
def reset_send_rate_limiter():
    """Clear the per-phone/per-IP OTP send counters around every test."""
    from phoneauth.services.send_limiter import get_send_limiter

    limiter = get_send_limiter()
    limiter.reset()
    yield
    limiter.reset()


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """In-memory SQLite engine with all tables created."""
    from phoneauth.core.database import Base
    import phoneauth.models  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async with session_maker() as session:
        yield session
        await session.rollback()


# --- Engines ---


@pytest.fixture
def otp_engine(db_session, dispatcher, clock):
    from phoneauth.services.otp import OtpEngine, OtpPolicy

    return OtpEngine(
        db_session,
        dispatcher=dispatcher,
        policy=OtpPolicy(code_length=6, validity=timedelta(minutes=5), max_attempts=3),
        clock=clock,
        app_name="phoneauth",
    )


@pytest.fixture
def token_engine(db_session, clock):
    from phoneauth.services.token import TokenEngine

    return TokenEngine(db_session, lifetime=timedelta(days=30), clock=clock)


# --- HTTP client ---


@pytest_asyncio.fixture(scope="function")
async def async_client(session_maker, clock, dispatcher) -> AsyncGenerator[AsyncClient, None]:
    """Async test client wired to the test database, clock and gateway."""
    from phoneauth.core.database import get_db
    from phoneauth.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    saved_state = (app.state.session_maker, app.state.clock, app.state.dispatcher)
    app.dependency_overrides[get_db] = override_get_db
    app.state.session_maker = session_maker
    app.state.clock = clock
    app.state.dispatcher = dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    await dispatcher.wait_idle(timeout=1.0)
    app.dependency_overrides.clear()
    app.state.session_maker, app.state.clock, app.state.dispatcher = saved_state


# --- Test Factories ---


@pytest.fixture
def principal_factory(db_session):
    """Factory for creating committed Principal rows."""
    from phoneauth.models.principal import Principal, PrincipalKind

    async def _create_principal(
        phone: str = TEST_PHONE,
        display_name: str = "Test User",
        kind: PrincipalKind = PrincipalKind.CUSTOMER,
        **kwargs,
    ) -> Principal:
        principal = Principal(
            id=kwargs.pop("id", uuid.uuid4()),
            phone=phone,
            display_name=display_name,
            kind=kind,
            **kwargs,
        )
        db_session.add(principal)
        await db_session.commit()
        await db_session.refresh(principal)
        return principal

    return _create_principal


@pytest_asyncio.fixture
async def principal(principal_factory):
    return await principal_factory()


@pytest_asyncio.fixture
async def login(async_client, principal):
    """Log the default principal in through the API and return its token."""
    response = await async_client.post("/otp/send", json={"phone": principal.phone})
    code = response.json()["code"]
    response = await async_client.post(
        "/otp/verify", json={"phone": principal.phone, "code": code}
    )
    assert response.status_code == 200, response.text
    return response.json()["token"]
