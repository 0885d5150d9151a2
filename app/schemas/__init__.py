"""
Pydantic schemas for API responses and requests
"""
from app.models.user import UserBase  # Re-export from models
from app.schemas.auth import (
    LoginRequest,
    RegisterRequest,
    SessionResponse,
    TokenPairData,
    UserResponse,
)
from app.schemas.common import ErrorEnvelope, ErrorItem, SuccessEnvelope

__all__ = [
    "UserBase",
    "LoginRequest",
    "RegisterRequest",
    "SessionResponse",
    "TokenPairData",
    "UserResponse",
    "ErrorEnvelope",
    "ErrorItem",
    "SuccessEnvelope",
]
