"""Rate limiting service using Redis sliding-window logs."""

import math
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import Annotated

import redis.asyncio as redis
from fastapi import Depends
from redis.exceptions import RedisError

from app.config import settings
from app.core.errors import RateLimitedError, RateLimiterUnavailableError
from app.core.logging import get_logger
from app.core.redis import get_redis

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one rate-limit check."""

    permitted: bool
    remaining: int
    retry_after: int = 0  # seconds until a slot frees up, 0 when permitted


@dataclass(frozen=True)
class RateLimitPolicy:
    """A named limit applied to one scope (ip, email, ...) of one action."""

    action: str
    scope: str
    limit: int
    window: timedelta
    message: str

    def key(self, identifier: str) -> str:
        return f"ratelimit:{self.action}:{self.scope}:{identifier}"


REGISTER_PER_IP = RateLimitPolicy(
    action="register",
    scope="ip",
    limit=settings.REGISTER_RATE_LIMIT,
    window=timedelta(seconds=settings.REGISTER_RATE_WINDOW_SECONDS),
    message="Too many registration attempts. Please try again later.",
)

LOGIN_PER_IP = RateLimitPolicy(
    action="login",
    scope="ip",
    limit=settings.LOGIN_IP_RATE_LIMIT,
    window=timedelta(seconds=settings.LOGIN_IP_RATE_WINDOW_SECONDS),
    message="Too many login attempts from this IP. Please try again later.",
)

LOGIN_PER_EMAIL = RateLimitPolicy(
    action="login",
    scope="email",
    limit=settings.LOGIN_EMAIL_RATE_LIMIT,
    window=timedelta(seconds=settings.LOGIN_EMAIL_RATE_WINDOW_SECONDS),
    message="Too many login attempts for this email. Please try again later.",
)

CSRF_ISSUE_PER_IP = RateLimitPolicy(
    action="csrf",
    scope="ip",
    limit=settings.CSRF_RATE_LIMIT,
    window=timedelta(seconds=settings.CSRF_RATE_WINDOW_SECONDS),
    message="Too many CSRF token requests from this IP. Please try again later.",
)


class RateLimiter:
    """
    Sliding-window rate limiter.

    Each key is a sorted set of request stamps scored by epoch milliseconds.
    A check drops stamps older than the window, adds the new stamp and counts,
    all in one MULTI/EXEC; a request over the limit removes its own stamp so
    denied calls do not extend the lockout.

    Keys are prefixed with the deployment environment so staging and
    production sharing one Redis never collide.
    """

    def __init__(
        self,
        redis_client: redis.Redis,  # type: ignore[type-arg]
        namespace: str = settings.ENVIRONMENT,
        clock: Callable[[], float] = time.time,
    ):
        self._redis = redis_client
        self._namespace = namespace
        self._clock = clock

    def namespaced(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def allow(self, key: str, limit: int, window: timedelta | int) -> RateLimitResult:
        """
        Count one request against key and decide whether it is permitted.

        Args:
            key: Non-empty key (e.g. "ratelimit:login:ip:1.2.3.4")
            limit: Maximum requests per window
            window: Window length (timedelta or seconds)

        Raises:
            ValueError: If key is empty
            RateLimiterUnavailableError: If Redis cannot be reached
        """
        if not key:
            raise ValueError("Rate limit key must be a non-empty string")

        window_ms = int(
            (window.total_seconds() if isinstance(window, timedelta) else window) * 1000
        )
        now_ms = int(self._clock() * 1000)
        redis_key = self.namespaced(key)
        member = f"{now_ms}:{secrets.token_hex(8)}"

        try:
            pipe = self._redis.pipeline(transaction=True)
            pipe.zremrangebyscore(redis_key, "-inf", now_ms - window_ms)
            pipe.zadd(redis_key, {member: now_ms})
            pipe.zcard(redis_key)
            pipe.pexpire(redis_key, window_ms)
            results = await pipe.execute()
            count = int(results[2])

            if count <= limit:
                return RateLimitResult(permitted=True, remaining=limit - count)

            await self._redis.zrem(redis_key, member)
            oldest = await self._redis.zrange(redis_key, 0, 0, withscores=True)
        except RedisError as exc:
            logger.error("rate_limiter_unavailable", key=redis_key, error=str(exc))
            raise RateLimiterUnavailableError() from exc

        retry_after_ms = window_ms
        if oldest:
            retry_after_ms = int(oldest[0][1]) + window_ms - now_ms
        return RateLimitResult(
            permitted=False,
            remaining=0,
            retry_after=max(1, math.ceil(retry_after_ms / 1000)),
        )


async def get_rate_limiter(
    redis_client: Annotated[redis.Redis, Depends(get_redis)],  # type: ignore[type-arg]
) -> RateLimiter:
    """Dependency providing a RateLimiter over the shared Redis client."""
    return RateLimiter(redis_client)


async def enforce_rate_limit(
    limiter: RateLimiter,
    policy: RateLimitPolicy,
    identifier: str,
) -> None:
    """
    Apply a policy to one identifier.

    Raises:
        RateLimitedError: 429 with Retry-After when the limit is exceeded
        RateLimiterUnavailableError: 500 when Redis is unreachable (fail closed)
    """
    result = await limiter.allow(policy.key(identifier), policy.limit, policy.window)

    if not result.permitted:
        logger.warning(
            "rate_limit_exceeded",
            action=policy.action,
            scope=policy.scope,
            limit=policy.limit,
            retry_after=result.retry_after,
        )
        raise RateLimitedError(
            policy.message,
            headers={"Retry-After": str(result.retry_after)},
        )

    logger.debug(
        "rate_limit_check",
        action=policy.action,
        scope=policy.scope,
        remaining=result.remaining,
    )
