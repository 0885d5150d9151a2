from collections.abc import AsyncGenerator

import redis.asyncio as redis

from app.config import settings

# Process-wide client; redis.asyncio pools connections internally
_client: redis.Redis | None = None  # type: ignore[type-arg]


def get_redis_client() -> redis.Redis:  # type: ignore[type-arg]
    """Return the shared Redis client, creating it on first use."""
    global _client
    if _client is None:
        _client = redis.from_url(
            str(settings.REDIS_URL),
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
        )
    return _client


async def close_redis() -> None:
    """Close the shared client (application shutdown)."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


async def get_redis() -> AsyncGenerator[redis.Redis, None]:  # type: ignore[type-arg]
    """
    Dependency for getting the async redis connection.
    """
    yield get_redis_client()
