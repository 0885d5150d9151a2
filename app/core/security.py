"""
Security utilities for authentication.

This module provides:
- Password hashing and verification using bcrypt
- Duration strings ("15m", "7d") for token lifetimes
- JWT signing and verification for access and refresh tokens
"""

import base64
import hashlib
import re
import secrets
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Any

import bcrypt
import jwt

from app.config import settings

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhdw])\s*$")

_DURATION_UNITS = {
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}


def _prepare_password_for_bcrypt(password: str) -> str:
    """
    Prepare password for bcrypt by handling long passwords.

    Bcrypt has a 72 byte limit. For passwords longer than 72 bytes,
    we SHA256 hash them first and encode as base64.

    Args:
        password: The plain text password

    Returns:
        Password ready for bcrypt (guaranteed <= 72 bytes)
    """
    password_bytes = password.encode("utf-8")

    if len(password_bytes) <= 72:
        return password

    # SHA256 produces 32 bytes, base64 encoding produces 44 chars (well under 72)
    hashed = hashlib.sha256(password_bytes).digest()
    return base64.b64encode(hashed).decode("ascii")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain password against a hashed password.

    Args:
        plain_password: The plain text password to verify
        hashed_password: The bcrypt hashed password

    Returns:
        True if password matches, False otherwise
    """
    prepared_password = _prepare_password_for_bcrypt(plain_password)
    try:
        return bcrypt.checkpw(prepared_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    For passwords longer than 72 bytes (bcrypt's limit), we SHA256 hash them first.

    Args:
        password: The plain text password to hash

    Returns:
        The bcrypt hashed password
    """
    prepared_password = _prepare_password_for_bcrypt(password)
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(prepared_password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


@lru_cache(maxsize=1)
def dummy_password_hash() -> str:
    """
    A hash of a random password, checked when the account does not exist.

    Login then pays the same bcrypt cost whether or not the email is known.
    """
    return get_password_hash(secrets.token_urlsafe(32))


def parse_duration(value: str) -> timedelta:
    """
    Convert a duration string such as "15m", "7d" or "60 s" to a timedelta.

    Supported units: s, m, h, d, w. The amount must be a positive integer.

    Raises:
        ValueError: If the string is not a valid duration
    """
    match = _DURATION_RE.match(value)
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")

    amount = int(match.group(1))
    if amount <= 0:
        raise ValueError(f"Duration must be positive: {value!r}")

    return amount * _DURATION_UNITS[match.group(2)]


def duration_seconds(value: str) -> int:
    """Duration string as whole seconds (used for cookie max-age)."""
    return int(parse_duration(value).total_seconds())


def sign_token(payload: dict[str, Any], expires_in: str, now: datetime | None = None) -> str:
    """
    Create a signed JWT embedding the payload.

    Adds the issued-at and expiration claims plus a random "jti" so two tokens
    minted in the same second for the same subject are never equal.

    Args:
        payload: Claims to embed (e.g. {"sub": "42"})
        expires_in: Lifetime as a duration string ("15m", "7d")
        now: Issue time, defaults to the current UTC time

    Returns:
        Encoded JWT token string
    """
    issued_at = now or datetime.now(UTC)

    claims = {
        **payload,
        "iat": issued_at,
        "exp": issued_at + parse_duration(expires_in),
        "jti": secrets.token_urlsafe(16),
    }

    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_token(token: str) -> dict[str, Any] | None:
    """
    Verify a JWT signature and expiration.

    The accepted algorithm list is fixed by configuration, so a token cannot
    pick its own algorithm (including "none").

    Args:
        token: The JWT token to verify

    Returns:
        Decoded claims if the token is valid, None otherwise. The cause of a
        failure is deliberately not reported.
    """
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"require": ["exp", "iat"], "verify_exp": True, "verify_signature": True},
        )
    except jwt.InvalidTokenError:
        return None

    return payload


def get_token_subject(token: str, token_type: str | None = None) -> int | None:
    """
    Verify a token and return its subject as a user ID.

    Args:
        token: The JWT token to verify
        token_type: When given, the token's "type" claim must match it

    Returns:
        User ID if token is valid and carries an integer subject, None otherwise
    """
    payload = verify_token(token)
    if payload is None:
        return None

    if token_type is not None and payload.get("type") != token_type:
        return None

    try:
        return int(payload["sub"])
    except (KeyError, ValueError, TypeError):
        return None


def create_token_pair(user_id: int) -> tuple[str, str]:
    """
    Mint a new access and refresh token bound to the user.

    The "type" claim keeps the two from being accepted in each other's place.

    Returns:
        Tuple of (access_token, refresh_token)
    """
    subject = str(user_id)
    access_token = sign_token(
        {"sub": subject, "type": ACCESS_TOKEN_TYPE}, settings.ACCESS_TOKEN_TTL
    )
    refresh_token = sign_token(
        {"sub": subject, "type": REFRESH_TOKEN_TYPE}, settings.REFRESH_TOKEN_TTL
    )
    return access_token, refresh_token
