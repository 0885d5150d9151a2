"""
Session store: the per-user collection of logged-in devices.

Each session holds the SHA-256 digest of the current refresh token of its
lineage. A refresh swaps the digest in place; presenting a token whose digest
matches no session is treated as reuse of a rotated token.
"""

import hashlib

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import SessionType
from app.models.user import Users, utc_now
from app.models.user_session import UserSessions
from app.services.session_metadata import SessionMetadata


def hash_refresh_token(token: str) -> str:
    """
    Hash a refresh token for storage.

    Args:
        token: Plain refresh token

    Returns:
        SHA256 hash of token (hex)
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def append_session(
    db: AsyncSession,
    user: Users,
    metadata: SessionMetadata,
    refresh_token: str,
    session_type: str = SessionType.CREDENTIAL,
) -> UserSessions:
    """
    Record a new session for the user. The number of sessions is not capped.

    Args:
        db: Database session (caller commits)
        user: Session owner
        metadata: Device metadata collected from the request
        refresh_token: Plain refresh token issued for this session
        session_type: "credential" or "oauth"
    """
    assert user.user_id is not None
    session = UserSessions(
        user_id=user.user_id,
        refresh_token_hash=hash_refresh_token(refresh_token),
        ip_address=metadata.ip_address,
        os=metadata.os,
        browser=metadata.browser,
        location=metadata.location,
        session_type=session_type,
    )
    db.add(session)
    await db.flush()
    return session


async def find_session_by_refresh_token(
    db: AsyncSession, user: Users, refresh_token: str
) -> UserSessions | None:
    """Return the user's session whose current refresh token is refresh_token."""
    result = await db.execute(
        select(UserSessions).where(
            UserSessions.user_id == user.user_id,  # type: ignore[arg-type]
            UserSessions.refresh_token_hash == hash_refresh_token(refresh_token),  # type: ignore[arg-type]
        )
    )
    return result.scalars().first()


async def rotate_session(
    db: AsyncSession,
    session: UserSessions,
    old_token: str,
    new_token: str,
) -> bool:
    """
    Replace a session's refresh token, only if it still holds old_token.

    The UPDATE is conditioned on the old digest, so two requests racing with
    the same token cannot both rotate it: the loser sees no matched row.

    Returns:
        True if the session was rotated, False if it no longer held old_token
    """
    new_hash = hash_refresh_token(new_token)
    now = utc_now()
    result = await db.execute(
        update(UserSessions)
        .where(
            UserSessions.session_id == session.session_id,  # type: ignore[arg-type]
            UserSessions.refresh_token_hash == hash_refresh_token(old_token),  # type: ignore[arg-type]
        )
        .values(refresh_token_hash=new_hash, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:  # type: ignore[attr-defined]
        return False

    session.refresh_token_hash = new_hash
    session.updated_at = now
    return True


async def revoke_all_sessions(db: AsyncSession, user: Users) -> int:
    """
    Remove every session of the user.

    Returns:
        Number of sessions removed
    """
    result = await db.execute(
        delete(UserSessions).where(UserSessions.user_id == user.user_id)  # type: ignore[arg-type]
    )
    return result.rowcount or 0  # type: ignore[attr-defined]


async def remove_session(db: AsyncSession, user: Users, refresh_token: str) -> bool:
    """
    Remove the single session holding refresh_token (logout of one device).

    Returns:
        True if a session was removed
    """
    result = await db.execute(
        delete(UserSessions).where(
            UserSessions.user_id == user.user_id,  # type: ignore[arg-type]
            UserSessions.refresh_token_hash == hash_refresh_token(refresh_token),  # type: ignore[arg-type]
        )
    )
    return bool(result.rowcount)  # type: ignore[attr-defined]


async def list_sessions(db: AsyncSession, user: Users) -> list[UserSessions]:
    """The user's sessions in creation order."""
    result = await db.execute(
        select(UserSessions)
        .where(UserSessions.user_id == user.user_id)  # type: ignore[arg-type]
        .order_by(UserSessions.session_id)  # type: ignore[arg-type]
    )
    return list(result.scalars().all())
