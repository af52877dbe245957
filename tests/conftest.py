"""
Shared test fixtures for pytest.

Provides:
- test_settings: Test environment configuration (in-memory SQLite)
- engine / session_factory / db_session: Real async database per test
- user, other_user: Persisted users owning goals
- test_app: FastAPI app wired to the per-test database
- client, other_client: Authenticated HTTP clients for two different users
- anon_client: HTTP client without credentials
- expired_token: JWT whose exp is already in the past
- make_token: Helper to create test JWT tokens
"""

from collections.abc import AsyncGenerator

import httpx
import pytest
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from goaltrack.auth.oidc import create_dev_token
from goaltrack.config import Environment, Settings, get_settings
from goaltrack.database import Base, build_engine, build_session_factory, get_db_session
from goaltrack.models.user import User

# ------------------------------------------------------------------ #
# Constants for Test JWTs
# ------------------------------------------------------------------ #

TEST_JWT_SECRET = "test-jwt-secret-for-unit-tests"
TEST_AUDIENCE = "goaltrack-api"


def make_token(sub: str, email: str = "test@example.com", expires_in: int = 3600) -> str:
    """Create a test JWT token using HS256."""
    return create_dev_token(
        sub=sub,
        secret=TEST_JWT_SECRET,
        audience=TEST_AUDIENCE,
        email=email,
        expires_in=expires_in,
    )


# ------------------------------------------------------------------ #
# Session-scoped: clear settings cache between test sessions
# ------------------------------------------------------------------ #


@pytest.fixture(autouse=True, scope="session")
def _clear_settings_cache():
    """Clear the lru_cache on get_settings so test overrides take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ------------------------------------------------------------------ #
# Settings & Database
# ------------------------------------------------------------------ #


@pytest.fixture
def test_settings() -> Settings:
    """Test environment settings with safe defaults."""
    return Settings(
        environment=Environment.TEST,
        secret_key="test-secret-key",
        database_url="sqlite+aiosqlite:///:memory:",
        oidc_issuer_url="http://localhost:8080/realms/test",
        oidc_audience=TEST_AUDIENCE,
        dev_jwt_secret=TEST_JWT_SECRET,
        debug=True,
        db_echo_sql=False,
    )


@pytest.fixture
async def engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database with all tables created."""
    engine = build_engine(test_settings, for_test=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def user(db_session: AsyncSession) -> User:
    user = User(external_id="user-a", email="a@example.com", is_active=True)
    db_session.add(user)
    await db_session.flush()
    return user


@pytest.fixture
async def other_user(db_session: AsyncSession) -> User:
    user = User(external_id="user-b", email="b@example.com", is_active=True)
    db_session.add(user)
    await db_session.flush()
    return user


# ------------------------------------------------------------------ #
# App & HTTP clients
# ------------------------------------------------------------------ #


@pytest.fixture
def test_app(
    test_settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
) -> FastAPI:
    """FastAPI app whose sessions and settings point at the test database.

    Each request gets its own session and transaction, like production.
    """
    from goaltrack.main import create_app

    app = create_app()

    async def _test_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _test_db_session
    app.dependency_overrides[get_settings] = lambda: test_settings
    return app


def _client(app: FastAPI, token: str | None = None) -> httpx.AsyncClient:
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
        headers=headers,
    )


@pytest.fixture
async def client(test_app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with _client(test_app, make_token("api-user-a", "a@example.com")) as ac:
        yield ac


@pytest.fixture
async def other_client(test_app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with _client(test_app, make_token("api-user-b", "b@example.com")) as ac:
        yield ac


@pytest.fixture
async def anon_client(test_app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with _client(test_app) as ac:
        yield ac


@pytest.fixture
def expired_token() -> str:
    return make_token("expired-user", expires_in=-60)
