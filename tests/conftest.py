"""Pytest configuration and fixtures."""

import os
from collections.abc import AsyncGenerator, AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

# Set test environment before importing app
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["AUTH_STORE_BACKEND"] = "memory"
os.environ["OTP_DELIVERY"] = "echo"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from otpflow.database import create_tables
from otpflow.main import app, init_state
from otpflow.services.auth_flow import AuthFlow
from otpflow.services.codes import KeyedLock, VerificationCodeManager
from otpflow.services.delivery import CodeSender
from otpflow.services.identifiers import IdentifierType
from otpflow.services.rate_limit import FixedWindowRateLimiter
from otpflow.services.tokens import TokenIssuer
from otpflow.stores import AuthStore, InMemoryAuthStore, SQLAuthStore

TEST_ACCESS_SECRET = "test-access-secret-that-is-at-least-32-chars"
TEST_REFRESH_SECRET = "test-refresh-secret-that-is-at-least-32-chars"


class FakeClock:
    """Controllable clock for both datetime and epoch-seconds consumers."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def now(self) -> datetime:
        return self.current

    def time(self) -> float:
        return self.current.timestamp()

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


class RecordingSender(CodeSender):
    """Sender that records messages instead of delivering them."""

    def __init__(self, succeed: bool = True) -> None:
        self.succeed = succeed
        self.sent: list[tuple[str, IdentifierType, str]] = []

    async def send(
        self,
        to: str,
        identifier_type: IdentifierType,
        code: str,
        expires_minutes: int,
    ) -> bool:
        self.sent.append((to, identifier_type, code))
        return self.succeed


@pytest.fixture(autouse=True)
def fresh_app_state():
    """Give every test its own rate limiter and memory store."""
    init_state(app)
    yield


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def memory_store() -> InMemoryAuthStore:
    """The in-memory store the app serves requests from."""
    return app.state.memory_store


@asynccontextmanager
async def sqlite_session() -> AsyncIterator[AsyncSession]:
    """Session on a fresh in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with session_factory() as session:
            yield session
    finally:
        await engine.dispose()


@pytest.fixture
async def sql_session() -> AsyncGenerator[AsyncSession, None]:
    async with sqlite_session() as session:
        yield session


@pytest.fixture
def sql_store(sql_session: AsyncSession) -> SQLAuthStore:
    return SQLAuthStore(sql_session)


@pytest.fixture(params=["memory", "sql"])
async def store(request) -> AsyncGenerator[AuthStore, None]:
    """Run a test against both store backends."""
    if request.param == "memory":
        yield InMemoryAuthStore()
        return
    async with sqlite_session() as session:
        yield SQLAuthStore(session)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token_issuer() -> TokenIssuer:
    return TokenIssuer(access_secret=TEST_ACCESS_SECRET, refresh_secret=TEST_REFRESH_SECRET)


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def make_flow(
    clock: FakeClock,
    token_issuer: TokenIssuer,
    sender: RecordingSender,
) -> Callable[..., AuthFlow]:
    """Factory for an AuthFlow wired to fakes."""

    def _make(
        store: AuthStore | None = None,
        *,
        echo_codes: bool = False,
        require_delivery: bool = False,
        ttl_minutes: int = 10,
        code_length: int = 4,
        code_sender: CodeSender | None = None,
    ) -> AuthFlow:
        store = store or InMemoryAuthStore()
        codes = VerificationCodeManager(
            store,
            KeyedLock(),
            code_length=code_length,
            ttl_minutes=ttl_minutes,
            clock=clock.now,
        )
        return AuthFlow(
            store,
            FixedWindowRateLimiter(clock=clock.time),
            token_issuer,
            codes,
            code_sender or sender,
            echo_codes=echo_codes,
            require_delivery=require_delivery,
            clock=clock.now,
        )

    return _make
