"""
Database schema models.

All models use SQLModel with inheritance-based security patterns: a Base class
holds the public fields, the table class adds the sensitive ones.
"""

from app.models.user import Users
from app.models.user_session import UserSessions

__all__ = [
    "Users",
    "UserSessions",
]
