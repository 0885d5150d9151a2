"""User lookup and creation for the registration and login flows."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import get_password_hash
from app.models.user import Users


def normalize_email(email: str) -> str:
    """Emails are stored and looked up trimmed and lower-cased."""
    return email.strip().lower()


async def get_user_by_email(db: AsyncSession, email: str) -> Users | None:
    """
    Load a user by email, including the password hash.

    Args:
        db: Database session
        email: Email address in any case

    Returns:
        User row or None if no user has that email
    """
    result = await db.execute(
        select(Users).where(Users.email == normalize_email(email))  # type: ignore[arg-type]
    )
    return result.scalar_one_or_none()


async def get_user_by_id(db: AsyncSession, user_id: int) -> Users | None:
    """Load a user by primary key."""
    return await db.get(Users, user_id)


async def create_user(db: AsyncSession, name: str, email: str, password: str) -> Users:
    """
    Create a user, hashing the password before the row is written.

    The caller owns the transaction. A concurrent insert of the same email
    surfaces as IntegrityError on flush.

    Args:
        db: Database session
        name: Display name (already trimmed)
        email: Email address
        password: Plain text password

    Returns:
        The flushed user row with its user_id populated
    """
    user = Users(
        name=name,
        email=normalize_email(email),
        password=get_password_hash(password),
    )
    db.add(user)
    await db.flush()
    return user
