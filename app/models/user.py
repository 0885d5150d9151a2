"""
SQLModel-based User models with inheritance for security

This module defines the Users database model using SQLModel, which combines
SQLAlchemy and Pydantic functionality. The inheritance structure is:

UserBase (shared public fields)
    ├─> Users (database table, adds the password hash and timestamps)
    └─> UserResponse (API schema, defined in app/schemas/auth.py)

The password hash lives only on the table class, so no response schema built
from UserBase can ever carry it.
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, Index
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(UTC)


class UserBase(SQLModel):
    """
    Base model with shared public fields for Users.

    These fields are safe to expose via the API.
    """

    name: str = Field(max_length=100)
    email: str = Field(max_length=255)


class Users(UserBase, table=True):
    """
    Database table for users.

    Internal/sensitive fields (should NOT be exposed via public API):
    - password: bcrypt hash, set by the registration flow before insert
    """

    __tablename__ = "users"

    __table_args__ = (Index("idx_users_email", "email", unique=True),)

    user_id: int | None = Field(default=None, primary_key=True)

    password: str = Field(max_length=255)

    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))

    # Note: the sessions relationship is intentionally omitted.
    # Sessions are loaded through app.services.sessions with explicit queries.
