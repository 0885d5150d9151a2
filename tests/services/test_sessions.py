"""Tests for the session store and user service."""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import SessionType
from app.core.security import verify_password
from app.models.user import Users
from app.models.user_session import UserSessions
from app.services.session_metadata import SessionMetadata
from app.services.sessions import (
    append_session,
    find_session_by_refresh_token,
    hash_refresh_token,
    list_sessions,
    remove_session,
    revoke_all_sessions,
    rotate_session,
)
from app.services.users import create_user, get_user_by_email

METADATA = SessionMetadata(ip_address="203.0.113.9", os="Linux", browser="Firefox", location="Oslo, NO")


@pytest.fixture
async def other_user(db_session: AsyncSession) -> Users:
    user = await create_user(db_session, name="Other", email="other@example.com", password="password123")
    await db_session.commit()
    return user


@pytest.mark.services
class TestUsers:
    """Tests for create_user / get_user_by_email."""

    async def test_create_user_hashes_password(self, db_session: AsyncSession):
        user = await create_user(db_session, name="A", email="A@X.com ", password="longenough1")
        await db_session.commit()

        assert user.user_id is not None
        assert user.email == "a@x.com"
        assert user.password != "longenough1"
        assert verify_password("longenough1", user.password)

    async def test_timestamps_are_utc_aware(self, db_session: AsyncSession):
        user = await create_user(db_session, name="B", email="b@x.com", password="longenough1")
        await db_session.commit()

        assert user.created_at.utcoffset() == timedelta(0)
        assert user.updated_at.utcoffset() == timedelta(0)

    async def test_lookup_is_case_insensitive(self, db_session: AsyncSession, test_user: Users):
        found = await get_user_by_email(db_session, "  TEST@Example.COM ")

        assert found is not None
        assert found.user_id == test_user.user_id
        assert found.password  # hash is loaded for login

    async def test_unknown_email(self, db_session: AsyncSession):
        assert await get_user_by_email(db_session, "nobody@example.com") is None

    async def test_duplicate_email_rejected_by_storage(self, db_session: AsyncSession, test_user: Users):
        with pytest.raises(IntegrityError):
            await create_user(db_session, name="Dup", email=test_user.email, password="password123")
        await db_session.rollback()


@pytest.mark.services
class TestSessionStore:
    """Tests for app.services.sessions."""

    async def test_append_stores_digest_not_token(self, db_session: AsyncSession, test_user: Users):
        session = await append_session(db_session, test_user, METADATA, "refresh-1")
        await db_session.commit()

        assert session.session_id is not None
        assert session.refresh_token_hash == hash_refresh_token("refresh-1")
        assert session.refresh_token_hash != "refresh-1"
        assert session.session_type == SessionType.CREDENTIAL
        assert (session.ip_address, session.os, session.browser, session.location) == (
            "203.0.113.9",
            "Linux",
            "Firefox",
            "Oslo, NO",
        )

    async def test_sessions_are_not_capped(self, db_session: AsyncSession, test_user: Users):
        for i in range(25):
            await append_session(db_session, test_user, METADATA, f"refresh-{i}")
        await db_session.commit()

        sessions = await list_sessions(db_session, test_user)

        assert len(sessions) == 25
        assert [s.session_id for s in sessions] == sorted(s.session_id for s in sessions)

    async def test_find_by_refresh_token(self, db_session: AsyncSession, test_user: Users):
        await append_session(db_session, test_user, METADATA, "refresh-a")
        wanted = await append_session(db_session, test_user, METADATA, "refresh-b")
        await db_session.commit()

        found = await find_session_by_refresh_token(db_session, test_user, "refresh-b")

        assert found is not None
        assert found.session_id == wanted.session_id
        assert await find_session_by_refresh_token(db_session, test_user, "unknown") is None

    async def test_find_is_scoped_to_user(
        self, db_session: AsyncSession, test_user: Users, other_user: Users
    ):
        await append_session(db_session, test_user, METADATA, "shared-looking-token")
        await db_session.commit()

        assert await find_session_by_refresh_token(db_session, other_user, "shared-looking-token") is None

    async def test_rotate_replaces_token(self, db_session: AsyncSession, test_user: Users):
        session = await append_session(db_session, test_user, METADATA, "old")
        await db_session.commit()

        rotated = await rotate_session(db_session, session, "old", "new")
        await db_session.commit()

        assert rotated is True
        assert await find_session_by_refresh_token(db_session, test_user, "old") is None
        found = await find_session_by_refresh_token(db_session, test_user, "new")
        assert found is not None
        assert found.session_id == session.session_id
        # Metadata is untouched by rotation
        assert found.browser == "Firefox"

    async def test_rotate_stamps_aware_updated_at(self, db_session: AsyncSession, test_user: Users):
        session = await append_session(db_session, test_user, METADATA, "old")
        await db_session.commit()
        assert session.created_at.utcoffset() == timedelta(0)

        assert await rotate_session(db_session, session, "old", "new") is True
        await db_session.commit()

        assert session.updated_at.utcoffset() == timedelta(0)
        assert session.updated_at >= session.created_at

    async def test_rotate_is_compare_and_set(self, db_session: AsyncSession, test_user: Users):
        """The same old token can only be rotated once."""
        session = await append_session(db_session, test_user, METADATA, "old")
        await db_session.commit()

        assert await rotate_session(db_session, session, "old", "new-1") is True
        assert await rotate_session(db_session, session, "old", "new-2") is False
        await db_session.commit()

        assert await find_session_by_refresh_token(db_session, test_user, "new-1") is not None
        assert await find_session_by_refresh_token(db_session, test_user, "new-2") is None

    async def test_revoke_all(self, db_session: AsyncSession, test_user: Users, other_user: Users):
        for i in range(3):
            await append_session(db_session, test_user, METADATA, f"mine-{i}")
        await append_session(db_session, other_user, METADATA, "theirs")
        await db_session.commit()

        removed = await revoke_all_sessions(db_session, test_user)
        await db_session.commit()

        assert removed == 3
        assert await list_sessions(db_session, test_user) == []
        assert len(await list_sessions(db_session, other_user)) == 1

    async def test_remove_single_session(self, db_session: AsyncSession, test_user: Users):
        await append_session(db_session, test_user, METADATA, "keep")
        await append_session(db_session, test_user, METADATA, "drop")
        await db_session.commit()

        assert await remove_session(db_session, test_user, "drop") is True
        assert await remove_session(db_session, test_user, "drop") is False
        await db_session.commit()

        result = await db_session.execute(select(UserSessions))
        remaining = result.scalars().all()
        assert [s.refresh_token_hash for s in remaining] == [hash_refresh_token("keep")]
