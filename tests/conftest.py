"""
Pytest configuration and shared fixtures.

This file provides common fixtures for all tests. Tests run without external
services: an in-memory SQLite database stands in for MariaDB and fakeredis
stands in for Redis.
"""

import os
from collections.abc import AsyncGenerator

# Settings are read at import time, so the environment must be set first
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-jwt-signing-0123456789")
os.environ.setdefault("CSRF_SECRET", "test-csrf-secret-0123456789abcdef")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DB_MIN_POOL_SIZE", "1")
os.environ.setdefault("TESTING", "true")

import fakeredis  # noqa: E402
import fakeredis.aioredis  # noqa: E402
import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from app.core.database import get_db  # noqa: E402
from app.core.redis import get_redis  # noqa: E402
from app.core.security import get_password_hash  # noqa: E402
from app.main import app as main_app  # noqa: E402
from app.models.user import Users  # noqa: E402

API = "/api/v1"

TEST_PASSWORD = "longenough1"


@pytest.fixture(scope="function")
async def engine():
    """
    Create a fresh in-memory database for each test function.

    StaticPool keeps the single connection alive, so every session in the
    test sees the same in-memory database.
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture(scope="function")
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a new database session for each test.

    The same session is handed to the app, so rows committed by a request are
    visible to the test and vice versa.
    """
    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
async def redis_client():
    """
    fakeredis client backed by a private server, so no state leaks between tests.
    """
    client = fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture(scope="function")
def app(db_session: AsyncSession, redis_client) -> FastAPI:
    """
    Create FastAPI app with test database session and Redis client.

    This overrides the database and Redis dependencies.
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    async def override_get_redis():
        yield redis_client

    main_app.dependency_overrides[get_db] = override_get_db
    main_app.dependency_overrides[get_redis] = override_get_redis

    yield main_app

    main_app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """
    Create async HTTP client for testing API endpoints.

    Usage:
        async def test_endpoint(client):
            response = await client.get("/api/v1/app/health")
            assert response.status_code == 200
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def csrf_token(client: AsyncClient) -> str:
    """
    Fetch a CSRF token; the client keeps the csrf_token cookie.

    Usage:
        async def test_refresh(client, csrf_token):
            await client.post(url, headers={"x-csrf-token": csrf_token})
    """
    response = await client.get(f"{API}/auth/csrf")
    assert response.status_code == 200
    return response.json()["data"]["csrfToken"]


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
async def test_user(db_session: AsyncSession) -> Users:
    """
    Create a test user whose password is TEST_PASSWORD.

    Usage:
        async def test_login(test_user, client):
            assert test_user.user_id is not None
    """
    user = Users(
        name="Test User",
        email="test@example.com",
        password=get_password_hash(TEST_PASSWORD),
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user
