"""
Authentication dependencies for FastAPI route protection.

This module provides dependency functions for:
- Extracting and verifying JWT access tokens from requests
- Loading current user from database
- Reading the refresh token cookie and the client IP
"""

from typing import Annotated

from fastapi import Cookie, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import CookieName
from app.core.database import get_db
from app.core.errors import UnauthorizedError
from app.core.logging import bind_user
from app.core.security import ACCESS_TOKEN_TYPE, get_token_subject
from app.models.user import Users

LOOPBACK_IP = "127.0.0.1"

# auto_error=False: the cookie is the primary transport, the header a fallback
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user_id(
    access_token: Annotated[str | None, Cookie(alias=CookieName.ACCESS_TOKEN)] = None,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)] = None,
) -> int:
    """
    Extract and verify the JWT access token.

    The accessToken cookie is checked first, then an Authorization: Bearer header.

    Returns:
        User ID from valid token

    Raises:
        UnauthorizedError: 401 if token is missing, invalid, or expired
    """
    token = access_token or (credentials.credentials if credentials else None)
    if not token:
        raise UnauthorizedError("Not authenticated", headers={"WWW-Authenticate": "Bearer"})

    user_id = get_token_subject(token, ACCESS_TOKEN_TYPE)
    if user_id is None:
        raise UnauthorizedError(
            "Could not validate credentials", headers={"WWW-Authenticate": "Bearer"}
        )

    bind_user(user_id)
    return user_id


async def get_current_user(
    user_id: Annotated[int, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Users:
    """
    Load current user from database using verified token.

    Raises:
        UnauthorizedError: 401 if the user no longer exists
    """
    result = await db.execute(select(Users).where(Users.user_id == user_id))  # type: ignore[arg-type]
    user = result.scalar_one_or_none()

    if user is None:
        raise UnauthorizedError("User not found")

    return user


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Checks X-Forwarded-For header first (for proxies/load balancers),
    falls back to direct client IP, then to the loopback address.
    IPv6 loopback is reported as 127.0.0.1.
    """
    ip: str | None = None

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first (client)
        ip = forwarded.split(",")[0].strip()

    if not ip and request.client:
        ip = request.client.host

    if not ip or ip == "::1":
        return LOOPBACK_IP
    return ip


def get_user_agent(request: Request) -> str:
    """User-Agent header, or an empty string if not present."""
    return request.headers.get("User-Agent", "")


async def get_refresh_token_from_cookie(
    refresh_token: Annotated[str | None, Cookie(alias=CookieName.REFRESH_TOKEN)] = None,
) -> str:
    """
    Extract refresh token from HTTPOnly cookie.

    Raises:
        UnauthorizedError: 401 if refresh token cookie is missing
    """
    if not refresh_token:
        raise UnauthorizedError("Refresh token missing", attr="refreshToken")
    return refresh_token


# Type aliases for dependency injection
CurrentUser = Annotated[Users, Depends(get_current_user)]
RefreshTokenCookie = Annotated[str, Depends(get_refresh_token_from_cookie)]
