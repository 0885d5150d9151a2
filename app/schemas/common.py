"""
Response envelope schemas shared by every endpoint.

Success: {code, detail, data, timestamp}
Error:   {type, code, errors: [{detail, attr}], timestamp}
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

from app.schemas.base import UTCDatetime


class ErrorItem(BaseModel):
    """One problem in an error response, optionally tied to an input attribute."""

    detail: str
    attr: str | None = None


class SuccessEnvelope(BaseModel):
    """Uniform success response body."""

    code: str = Field(..., description="HTTP status name, e.g. OK or CREATED")
    detail: str
    data: Any = None
    timestamp: UTCDatetime


class ErrorEnvelope(BaseModel):
    """Uniform error response body."""

    type: Literal["client_error", "server_error"]
    code: str = Field(..., description="HTTP status name, e.g. UNAUTHORIZED")
    errors: list[ErrorItem]
    timestamp: UTCDatetime
