"""
Custom JSON response with UTC datetime serialization, and the envelope builders.

All datetime objects are serialized with 'Z' suffix to indicate UTC,
ensuring clients can properly parse and convert to local timezone.
"""

import json
from datetime import UTC, datetime
from http import HTTPStatus
from typing import Any

from fastapi.responses import JSONResponse

from app.schemas.common import ErrorEnvelope, ErrorItem, SuccessEnvelope


class UTCDateTimeEncoder(json.JSONEncoder):
    """JSON encoder that serializes datetime objects with Z suffix."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.strftime("%Y-%m-%dT%H:%M:%SZ")
        return super().default(obj)


class UTCJSONResponse(JSONResponse):
    """JSON response that serializes all datetimes with UTC Z suffix."""

    def render(self, content: Any) -> bytes:
        return json.dumps(
            content,
            cls=UTCDateTimeEncoder,
            ensure_ascii=False,
            allow_nan=False,
            indent=None,
            separators=(",", ":"),
        ).encode("utf-8")


def status_code_name(status_code: int) -> str:
    """HTTP status name used as the envelope code (e.g. 429 -> TOO_MANY_REQUESTS)."""
    try:
        return HTTPStatus(status_code).name
    except ValueError:
        return "ERROR"


def api_success(
    status_code: int,
    detail: str,
    data: Any = None,
) -> UTCJSONResponse:
    """
    Build a success envelope response.

    Args:
        status_code: HTTP status code (200, 201, ...)
        detail: Human-readable success message
        data: Optional payload (None is serialized as null)
    """
    envelope = SuccessEnvelope(
        code=status_code_name(status_code),
        detail=detail,
        data=data,
        timestamp=datetime.now(UTC),
    )
    return UTCJSONResponse(status_code=status_code, content=envelope.model_dump(mode="json"))


def api_error(
    status_code: int,
    errors: list[ErrorItem],
    headers: dict[str, str] | None = None,
) -> UTCJSONResponse:
    """
    Build an error envelope response.

    The type is client_error for 4xx and server_error for 5xx.
    """
    envelope = ErrorEnvelope(
        type="server_error" if status_code >= 500 else "client_error",
        code=status_code_name(status_code),
        errors=errors,
        timestamp=datetime.now(UTC),
    )
    return UTCJSONResponse(
        status_code=status_code,
        content=envelope.model_dump(mode="json"),
        headers=headers,
    )
