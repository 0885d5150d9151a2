"""Tests for error types and the response envelopes."""

import json

import pytest
from pydantic import BaseModel, EmailStr, Field, ValidationError

from app.core.errors import (
    CsrfError,
    ErrorKind,
    InternalError,
    RateLimitedError,
    RateLimiterUnavailableError,
    RequestValidationFailed,
    SecurityAlertError,
    ServiceUnavailableError,
    UnauthorizedError,
)
from app.core.json_response import api_error, api_success, status_code_name
from app.schemas.common import ErrorItem


class Inner(BaseModel):
    email: EmailStr


class Outer(BaseModel):
    name: str = Field(min_length=1)
    user: Inner


@pytest.mark.unit
class TestErrorVariants:
    """Each variant has a fixed kind and status."""

    @pytest.mark.parametrize(
        ("error", "kind", "status_code"),
        [
            (RequestValidationFailed("bad"), ErrorKind.VALIDATION, 400),
            (RateLimitedError("slow down"), ErrorKind.RATE_LIMIT, 429),
            (UnauthorizedError("nope"), ErrorKind.UNAUTHORIZED, 401),
            (CsrfError(), ErrorKind.CSRF, 403),
            (SecurityAlertError("alert"), ErrorKind.SECURITY_ALERT, 403),
            (InternalError("boom"), ErrorKind.INTERNAL, 500),
            (ServiceUnavailableError("down"), ErrorKind.INTERNAL, 503),
            (RateLimiterUnavailableError(), ErrorKind.INTERNAL, 500),
        ],
    )
    def test_kind_and_status(self, error, kind, status_code):
        assert error.kind is kind
        assert error.status_code == status_code

    def test_csrf_error_attr(self):
        assert CsrfError().errors == [ErrorItem(detail="Invalid CSRF token", attr="csrf")]

    def test_rate_limiter_unavailable_is_sanitized(self):
        detail = RateLimiterUnavailableError().errors[0].detail

        assert "redis" not in detail.lower()

    def test_from_pydantic_uses_dotted_paths(self):
        with pytest.raises(ValidationError) as exc_info:
            Outer.model_validate({"name": "", "user": {"email": "not-an-email"}})

        failure = RequestValidationFailed.from_pydantic(exc_info.value)

        assert {item.attr for item in failure.errors} == {"name", "user.email"}


@pytest.mark.unit
class TestEnvelopes:
    """Tests for api_success / api_error."""

    def test_status_code_name(self):
        assert status_code_name(200) == "OK"
        assert status_code_name(201) == "CREATED"
        assert status_code_name(429) == "TOO_MANY_REQUESTS"
        assert status_code_name(599) == "ERROR"

    def test_success_envelope(self):
        response = api_success(201, "Registration successful. Please log in.")
        body = json.loads(response.body)

        assert response.status_code == 201
        assert set(body) == {"code", "detail", "data", "timestamp"}
        assert body["code"] == "CREATED"
        assert body["data"] is None
        assert body["timestamp"].endswith("Z")

    def test_client_error_envelope(self):
        response = api_error(
            429,
            [ErrorItem(detail="Too many requests")],
            headers={"Retry-After": "30"},
        )
        body = json.loads(response.body)

        assert response.headers["Retry-After"] == "30"
        assert body["type"] == "client_error"
        assert body["code"] == "TOO_MANY_REQUESTS"
        assert body["errors"] == [{"detail": "Too many requests", "attr": None}]

    def test_server_error_envelope(self):
        body = json.loads(api_error(503, [ErrorItem(detail="down", attr="database")]).body)

        assert body["type"] == "server_error"
        assert body["code"] == "SERVICE_UNAVAILABLE"
