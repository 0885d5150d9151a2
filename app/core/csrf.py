"""
CSRF protection using signed double-submit cookies.

Token format: "value.timestamp.signature"
- value: 32 random bytes, hex encoded
- timestamp: issue time in epoch milliseconds
- signature: HMAC-SHA256 over "value.timestamp" with CSRF_SECRET, hex encoded

A state-changing request must carry the same token in the csrf_token cookie
and the x-csrf-token header, and the cookie token must carry a valid
signature. Safe methods and the login/register entry points are exempt.
"""

import hashlib
import hmac
import secrets
import time
from collections.abc import Awaitable, Callable
from enum import StrEnum

from fastapi import Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.config import CSRF_HEADER_NAME, CookieName, settings
from app.core.errors import CsrfError
from app.core.json_response import api_error
from app.core.logging import get_logger

logger = get_logger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})

EXEMPT_PATHS = frozenset(
    {
        f"{settings.API_V1_STR}/auth/login",
        f"{settings.API_V1_STR}/auth/register",
    }
)


class CsrfVerification(StrEnum):
    """Result of checking a single CSRF token."""

    FRESH = "fresh"
    EXPIRED = "expired"  # signature good, older than the expiry window
    INVALID = "invalid"

    @property
    def signature_valid(self) -> bool:
        return self is not CsrfVerification.INVALID


def _sign(payload: str) -> str:
    return hmac.new(
        settings.CSRF_SECRET.encode("utf-8"),
        payload.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def generate_csrf_token(now_ms: int | None = None) -> str:
    """
    Generate a signed CSRF token.

    Args:
        now_ms: Issue time in epoch milliseconds, defaults to the current time

    Returns:
        Token string "value.timestamp.signature"
    """
    value = secrets.token_hex(32)
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    payload = f"{value}.{timestamp}"
    return f"{payload}.{_sign(payload)}"


def verify_csrf_token(token: str | None, now_ms: int | None = None) -> CsrfVerification:
    """
    Verify a CSRF token's signature and age.

    Args:
        token: Token string to verify
        now_ms: Current time in epoch milliseconds, defaults to the current time

    Returns:
        FRESH, EXPIRED (signature valid but too old) or INVALID
    """
    if not token or not isinstance(token, str):
        return CsrfVerification.INVALID

    parts = token.split(".")
    if len(parts) != 3:
        return CsrfVerification.INVALID

    value, timestamp_str, signature = parts
    if not value or not timestamp_str or not signature:
        return CsrfVerification.INVALID

    expected = _sign(f"{value}.{timestamp_str}")
    signature_bytes = signature.encode("utf-8")
    expected_bytes = expected.encode("utf-8")

    if len(signature_bytes) != len(expected_bytes) or not hmac.compare_digest(
        signature_bytes, expected_bytes
    ):
        return CsrfVerification.INVALID

    try:
        timestamp = int(timestamp_str)
    except ValueError:
        return CsrfVerification.INVALID

    now = now_ms if now_ms is not None else int(time.time() * 1000)
    age_seconds = (now - timestamp) / 1000

    if age_seconds > settings.CSRF_TOKEN_EXPIRY_SECONDS:
        return CsrfVerification.EXPIRED

    return CsrfVerification.FRESH


def set_csrf_cookie(response: Response, token: str | None = None) -> str:
    """
    Set a CSRF token as an HTTPOnly cookie on the response.

    Args:
        response: Response to attach the cookie to
        token: Token to set, a new one is generated when omitted

    Returns:
        The token that was set
    """
    token = token or generate_csrf_token()
    response.set_cookie(
        key=CookieName.CSRF_TOKEN,
        value=token,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="strict",
        max_age=settings.CSRF_TOKEN_EXPIRY_SECONDS,
        path="/",
    )
    return token


def validate_csrf_request(
    method: str,
    path: str,
    cookie_token: str | None,
    header_token: str | None,
) -> bool:
    """
    Double-submit check for one request.

    Returns:
        True if the request is exempt or both tokens match and the cookie
        token is validly signed, False otherwise
    """
    if method.upper() in SAFE_METHODS or path in EXEMPT_PATHS:
        return True

    if not cookie_token or not header_token:
        return False

    cookie_bytes = cookie_token.encode("utf-8")
    header_bytes = header_token.encode("utf-8")
    if len(cookie_bytes) != len(header_bytes) or not hmac.compare_digest(
        cookie_bytes, header_bytes
    ):
        return False

    verification = verify_csrf_token(cookie_token)
    if settings.CSRF_REJECT_EXPIRED:
        return verification is CsrfVerification.FRESH
    return verification.signature_valid


class CSRFMiddleware(BaseHTTPMiddleware):
    """Reject API requests that fail the double-submit check with a 403 envelope."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        path = request.url.path
        if path.startswith(settings.API_V1_STR) and not validate_csrf_request(
            request.method,
            path,
            request.cookies.get(CookieName.CSRF_TOKEN),
            request.headers.get(CSRF_HEADER_NAME),
        ):
            logger.warning("csrf_validation_failed", method=request.method, path=path)
            error = CsrfError()
            return api_error(error.status_code, error.errors)

        return await call_next(request)
