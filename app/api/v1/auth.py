"""
Authentication API endpoints.

This module provides endpoints for:
- Registration (enumeration-safe)
- Login (JWT access + refresh token cookies, one session per device)
- Token refresh (with rotation and reuse detection)
- Logout of one device or all devices
- Current user profile
- CSRF token issuance
"""

from typing import Annotated, NoReturn

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import CookieName, settings
from app.core.auth import CurrentUser, RefreshTokenCookie, get_client_ip
from app.core.csrf import generate_csrf_token, set_csrf_cookie
from app.core.database import get_db
from app.core.errors import RequestValidationFailed, SecurityAlertError, UnauthorizedError
from app.core.json_response import api_success
from app.core.logging import bind_user, get_logger
from app.core.security import (
    REFRESH_TOKEN_TYPE,
    create_token_pair,
    duration_seconds,
    dummy_password_hash,
    get_token_subject,
    verify_password,
)
from app.core.validation import validate_body
from app.models.user import Users
from app.schemas.auth import (
    LoginRequest,
    RegisterRequest,
    SessionResponse,
    TokenPairData,
    UserResponse,
)
from app.services import sessions as session_store
from app.services.rate_limit import (
    CSRF_ISSUE_PER_IP,
    LOGIN_PER_EMAIL,
    LOGIN_PER_IP,
    REGISTER_PER_IP,
    RateLimiter,
    enforce_rate_limit,
    get_rate_limiter,
)
from app.services.session_metadata import collect_session_metadata
from app.services.users import create_user, get_user_by_email, get_user_by_id

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

INVALID_CREDENTIALS = "Invalid credentials"
INVALID_REFRESH_TOKEN = "Invalid or expired refresh token"
TOKEN_REUSE_DETECTED = (
    "Security Alert: reused refresh token detected. All sessions have been revoked."
)
REGISTRATION_ACKNOWLEDGED = "If this email is valid, you will be able to log in."
REGISTRATION_SUCCEEDED = "Registration successful. Please log in."

Limiter = Annotated[RateLimiter, Depends(get_rate_limiter)]
DbSession = Annotated[AsyncSession, Depends(get_db)]


def _set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    """
    Set authentication cookies in response.

    Both tokens travel as HTTPOnly cookies; max-age matches the token lifetime.

    Args:
        response: Response object
        access_token: JWT access token
        refresh_token: JWT refresh token
    """
    response.set_cookie(
        key=CookieName.ACCESS_TOKEN,
        value=access_token,
        httponly=True,  # Prevent JavaScript access (XSS protection)
        secure=settings.secure_cookies,  # HTTPS only in production
        samesite="strict",  # CSRF protection
        max_age=duration_seconds(settings.ACCESS_TOKEN_TTL),
        path="/",
    )

    response.set_cookie(
        key=CookieName.REFRESH_TOKEN,
        value=refresh_token,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="strict",
        max_age=duration_seconds(settings.REFRESH_TOKEN_TTL),
        path="/",
    )


def _clear_auth_cookies(response: Response) -> None:
    """
    Clear authentication cookies from response (match set_cookie params).
    """
    for key in (CookieName.ACCESS_TOKEN, CookieName.REFRESH_TOKEN):
        response.delete_cookie(
            key=key,
            path="/",
            httponly=True,
            secure=settings.secure_cookies,
            samesite="strict",
        )


async def _revoke_for_reuse(db: AsyncSession, user: Users) -> NoReturn:
    """
    Revoke every session of the user, then raise the security alert.

    Commits before raising: the revocation must persist even though the
    request fails.
    """
    revoked = await session_store.revoke_all_sessions(db, user)
    await db.commit()
    logger.warning("refresh_token_reuse_detected", user_id=user.user_id, revoked_sessions=revoked)
    raise SecurityAlertError(TOKEN_REUSE_DETECTED)


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(request: Request, db: DbSession, limiter: Limiter) -> Response:
    """
    Register a new user.

    Flow:
    1. Rate limit by client IP (3 per hour)
    2. Validate name, email and password
    3. Reject bot submissions that filled the _honey field
    4. If the email is taken, answer 200 with a neutral message
    5. Otherwise create the user (password hashed first) and answer 201

    Both success answers share the same envelope shape, so the response does
    not reveal whether an account exists.
    """
    await enforce_rate_limit(limiter, REGISTER_PER_IP, get_client_ip(request))

    body = await validate_body(request, RegisterRequest)

    if body.honey:
        logger.warning("registration_honeypot_triggered", ip_address=get_client_ip(request))
        raise RequestValidationFailed("Invalid request", attr="_honey")

    if await get_user_by_email(db, body.email) is not None:
        return api_success(status.HTTP_200_OK, REGISTRATION_ACKNOWLEDGED)

    try:
        user = await create_user(db, name=body.name, email=body.email, password=body.password)
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration of the same email
        await db.rollback()
        return api_success(status.HTTP_200_OK, REGISTRATION_ACKNOWLEDGED)

    logger.info("user_registered", user_id=user.user_id)
    return api_success(status.HTTP_201_CREATED, REGISTRATION_SUCCEEDED)


@router.post("/login")
async def login(request: Request, db: DbSession, limiter: Limiter) -> Response:
    """
    Authenticate user and issue an access/refresh token pair.

    Flow:
    1. Rate limit by client IP (10 per 10 minutes)
    2. Validate email and password
    3. Rate limit by email (5 per 15 minutes)
    4. Verify password; unknown email and wrong password get the same 401
       and the same bcrypt cost (unknown emails check a dummy hash)
    5. Record a new session with device metadata and the refresh token
    6. Set accessToken and refreshToken cookies

    The token pair is also returned in the body when returnToken is true.
    """
    client_ip = get_client_ip(request)
    await enforce_rate_limit(limiter, LOGIN_PER_IP, client_ip)

    credentials = await validate_body(request, LoginRequest)

    await enforce_rate_limit(limiter, LOGIN_PER_EMAIL, credentials.email)

    user = await get_user_by_email(db, credentials.email)
    password_hash = user.password if user is not None else dummy_password_hash()
    password_ok = verify_password(credentials.password, password_hash)
    if user is None or not password_ok:
        logger.info("login_failed", ip_address=client_ip)
        raise UnauthorizedError(INVALID_CREDENTIALS)

    assert user.user_id is not None
    bind_user(user.user_id)

    access_token, refresh_token = create_token_pair(user.user_id)
    metadata = collect_session_metadata(request)
    await session_store.append_session(db, user, metadata, refresh_token)
    await db.commit()

    logger.info("login_succeeded", ip_address=client_ip, browser=metadata.browser)

    data = None
    if credentials.return_token:
        data = TokenPairData(accessToken=access_token, refreshToken=refresh_token).model_dump()

    response = api_success(status.HTTP_200_OK, "Login successful", data=data)
    _set_auth_cookies(response, access_token, refresh_token)
    return response


@router.post("/refresh")
async def refresh(refresh_token: RefreshTokenCookie, db: DbSession) -> Response:
    """
    Exchange a refresh token for a new token pair.

    This endpoint implements refresh token rotation for security:
    1. Verify the refresh token cookie
    2. Find the session currently holding it
    3. Mint a new pair and swap the session's token in place
    4. Set the new cookies

    Presenting a token that no session holds (already rotated or logged out)
    indicates potential token theft: all sessions of the user are revoked
    and the request fails with 403.
    """
    user_id = get_token_subject(refresh_token, REFRESH_TOKEN_TYPE)
    if user_id is None:
        raise UnauthorizedError(INVALID_REFRESH_TOKEN, attr=CookieName.REFRESH_TOKEN)

    user = await get_user_by_id(db, user_id)
    if user is None:
        raise UnauthorizedError("User not found")

    assert user.user_id is not None
    bind_user(user.user_id)

    session = await session_store.find_session_by_refresh_token(db, user, refresh_token)
    if session is None:
        await _revoke_for_reuse(db, user)

    access_token, new_refresh_token = create_token_pair(user.user_id)
    if not await session_store.rotate_session(db, session, refresh_token, new_refresh_token):
        # Another request rotated this token first
        await _revoke_for_reuse(db, user)
    await db.commit()

    logger.info("token_refreshed", session_id=session.session_id)

    response = api_success(status.HTTP_200_OK, "Token refreshed successfully")
    _set_auth_cookies(response, access_token, new_refresh_token)
    return response


@router.post("/logout")
async def logout(refresh_token: RefreshTokenCookie, db: DbSession) -> Response:
    """
    Log out the current device.

    Removes the session holding the refresh token (if any) and clears the
    auth cookies. An unverifiable token still gets its cookies cleared.
    """
    user_id = get_token_subject(refresh_token, REFRESH_TOKEN_TYPE)
    user = await get_user_by_id(db, user_id) if user_id is not None else None

    if user is not None:
        removed = await session_store.remove_session(db, user, refresh_token)
        await db.commit()
        logger.info("logged_out", user_id=user.user_id, session_removed=removed)

    response = api_success(status.HTTP_200_OK, "Logged out successfully")
    _clear_auth_cookies(response)
    return response


@router.post("/logout-all")
async def logout_all(current_user: CurrentUser, db: DbSession) -> Response:
    """
    Log out every device of the authenticated user.
    """
    revoked = await session_store.revoke_all_sessions(db, current_user)
    await db.commit()
    logger.info("logged_out_all_devices", revoked_sessions=revoked)

    response = api_success(status.HTTP_200_OK, "Logged out from all devices")
    _clear_auth_cookies(response)
    return response


@router.get("/me")
async def get_me(current_user: CurrentUser, db: DbSession) -> Response:
    """
    Get the authenticated user's profile and active sessions.
    """
    sessions = await session_store.list_sessions(db, current_user)
    profile = UserResponse.model_validate(
        {
            **current_user.model_dump(exclude={"password"}),
            "sessions": [SessionResponse.model_validate(s.model_dump()) for s in sessions],
        }
    )
    return api_success(
        status.HTTP_200_OK, "User retrieved successfully", data=profile.model_dump(mode="json")
    )


@router.get("/csrf")
async def issue_csrf_token(request: Request, limiter: Limiter) -> Response:
    """
    Issue a CSRF token.

    The token is set as the csrf_token cookie and echoed in the body so the
    client can send it back in the x-csrf-token header.
    """
    await enforce_rate_limit(limiter, CSRF_ISSUE_PER_IP, get_client_ip(request))

    token = generate_csrf_token()
    response = api_success(status.HTTP_200_OK, "CSRF token set", data={"csrfToken": token})
    set_csrf_cookie(response, token)
    return response
