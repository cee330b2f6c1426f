"""
Test fixtures for the Ledger API test suite.

This module provides shared fixtures used across all test files:

  - db_engine / db_session: Fresh in-memory SQLite database for each test
  - read_cache: A fresh OwnerReadCache injected in place of the process one
  - client: Async HTTP test client (no identity)
  - authenticated_client: Client carrying a token for owner "owner-1"
  - second_authenticated_client: Separate client for owner "owner-2"
  - admin_client: Client carrying a token with the "admin" role claim

Key design decisions:
  - In-memory SQLite (sqlite+aiosqlite://) is used for speed and isolation.
    Each test gets a completely fresh database — no state leaks between tests.
  - We override FastAPI's get_db dependency to inject our test engine,
    so the application code works exactly as it does in production.
  - Identity tokens are minted with the same signing key the app verifies
    with; there is no login flow in this service.
"""

import os

# Settings() requires a signing key before the application is imported
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("LOG_JSON", "false")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from ledger.cache import OwnerReadCache
from ledger.database import Base, get_db
from ledger.dependencies import get_read_cache
from ledger.main import app
from ledger.security import create_access_token


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"

OWNER_ID = "owner-1"
SECOND_OWNER_ID = "owner-2"
ADMIN_OWNER_ID = "admin-1"


def auth_headers(owner_id: str, email: str | None = None, role: str | None = None) -> dict:
    token = create_access_token(owner_id, email=email or f"{owner_id}@example.com", role=role)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Provide an async session bound to the test engine."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session() as session:
        yield session


@pytest_asyncio.fixture
async def read_cache():
    return OwnerReadCache(ttl_seconds=30.0)


@pytest_asyncio.fixture
async def client(db_engine, read_cache):
    """
    Async HTTP test client with the test database injected.

    This overrides the get_db dependency so all requests hit the
    in-memory test database instead of the real one.
    """
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async def override_get_db():
        async with async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_read_cache] = lambda: read_cache

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def authenticated_client(client):
    """Test client whose requests are made as OWNER_ID."""
    client.headers.update(auth_headers(OWNER_ID))
    return client


@pytest_asyncio.fixture
async def second_authenticated_client(client):
    """
    A second owner on its own client, for cross-owner isolation tests.

    Shares the app overrides (and so the database) with `client`.
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers=auth_headers(SECOND_OWNER_ID),
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def admin_client(client):
    """A client whose token carries the "admin" role claim."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers=auth_headers(ADMIN_OWNER_ID, role="admin"),
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def owner_id():
    """The owner id behind authenticated_client, for service-level tests."""
    return OWNER_ID


@pytest.fixture
def fail_flush(monkeypatch):
    """
    Make the n-th explicit `await session.flush()` raise `error`.

    Calls before and after the n-th go through to the real flush.
    """

    def install(n: int, error: Exception) -> None:
        real_flush = AsyncSession.flush
        calls = []

        async def flaky_flush(self, *args, **kwargs):
            calls.append(1)
            if len(calls) == n:
                raise error
            return await real_flush(self, *args, **kwargs)

        monkeypatch.setattr(AsyncSession, "flush", flaky_flush)

    return install
