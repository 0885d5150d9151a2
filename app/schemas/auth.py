"""
Authentication schemas for request/response validation.

This module defines Pydantic models for authentication-related API operations:
- Login credentials
- User registration (with the _honey bot trap)
- Token and profile responses
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.models.user import UserBase
from app.models.user_session import UserSessionBase
from app.schemas.base import UTCDatetime


def _normalize_email(v: object) -> object:
    return v.strip().lower() if isinstance(v, str) else v


class LoginRequest(BaseModel):
    """Request schema for user login."""

    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=255)  # Allow any length for existing users
    return_token: bool = Field(
        default=False,
        alias="returnToken",
        description="Also return the token pair in the response body",
    )

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: object) -> object:
        return _normalize_email(v)


class RegisterRequest(BaseModel):
    """Request schema for user registration."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=255)
    # Hidden form field; humans leave it empty
    honey: str | None = Field(default=None, alias="_honey")

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: object) -> object:
        return _normalize_email(v)


class TokenPairData(BaseModel):
    """Token pair returned in the body when the client asks for it."""

    accessToken: str
    refreshToken: str


class SessionResponse(UserSessionBase):
    """One session as listed back to its owner. No token material."""

    session_id: int
    created_at: UTCDatetime
    updated_at: UTCDatetime


class UserResponse(UserBase):
    """Authenticated user's profile."""

    user_id: int
    created_at: UTCDatetime
    sessions: list[SessionResponse] = []
