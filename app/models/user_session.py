"""
SQLModel-based UserSession model.

One row per logged-in device. Each row carries the digest of the current
refresh token of its lineage; rotating the token replaces the digest, so a
previously issued refresh token no longer matches any row.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKeyConstraint, Index
from sqlmodel import Field, SQLModel

from app.config import SessionType
from app.models.user import utc_now


class UserSessionBase(SQLModel):
    """
    Public session fields (device metadata), safe to list back to the owner.
    """

    ip_address: str = Field(default="127.0.0.1", max_length=45)  # Supports IPv6
    os: str = Field(default="Unknown OS", max_length=100)
    browser: str = Field(default="Unknown Browser", max_length=100)
    location: str = Field(default="Unknown Location", max_length=150)
    session_type: str = Field(default=SessionType.CREDENTIAL, max_length=20)


class UserSessions(UserSessionBase, table=True):
    """
    Database table for user sessions.

    Internal fields (should NOT be exposed via public API):
    - refresh_token_hash: SHA-256 hex digest of the current refresh token
    """

    __tablename__ = "user_sessions"

    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            ondelete="CASCADE",
            onupdate="CASCADE",
            name="fk_user_sessions_user_id",
        ),
        Index("idx_user_sessions_user_id", "user_id"),
        Index("idx_user_sessions_refresh_token_hash", "refresh_token_hash"),
    )

    session_id: int | None = Field(default=None, primary_key=True)

    user_id: int = Field(foreign_key="users.user_id")

    # Token (hashed for security - never store plaintext!)
    refresh_token_hash: str = Field(max_length=64)

    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
