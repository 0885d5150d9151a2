"""
Error types carried through the auth pipeline and their HTTP conversion.

Every expected failure is an ApiError subclass with a fixed kind and status.
Handlers registered on the app turn them into the error envelope at the
boundary; anything else is an unexpected failure and becomes a sanitized 500.
"""

from enum import StrEnum
from typing import ClassVar

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.json_response import api_error
from app.core.logging import get_logger
from app.schemas.common import ErrorItem

logger = get_logger(__name__)

INTERNAL_ERROR_DETAIL = "An unexpected error occurred. Please try again later."


class ErrorKind(StrEnum):
    """Closed set of failure categories produced by the pipeline."""

    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    UNAUTHORIZED = "unauthorized"
    CSRF = "csrf"
    SECURITY_ALERT = "security_alert"
    INTERNAL = "internal"


class ApiError(Exception):
    """Base class for structured API failures."""

    kind: ClassVar[ErrorKind]
    status_code: ClassVar[int]

    def __init__(
        self,
        detail: str | None = None,
        attr: str | None = None,
        *,
        errors: list[ErrorItem] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        if errors is None:
            errors = [ErrorItem(detail=detail or "", attr=attr)]
        self.errors = errors
        self.headers = headers
        super().__init__(errors[0].detail if errors else self.kind.value)


class RequestValidationFailed(ApiError):
    """Malformed or missing input."""

    kind = ErrorKind.VALIDATION
    status_code = status.HTTP_400_BAD_REQUEST

    @classmethod
    def from_pydantic(cls, exc: ValidationError | RequestValidationError) -> "RequestValidationFailed":
        """Map pydantic issues to per-field error items ("user.email" style paths)."""
        items = []
        for issue in exc.errors():
            loc = [str(part) for part in issue.get("loc", ()) if part != "body"]
            items.append(
                ErrorItem(detail=issue.get("msg", "Invalid value"), attr=".".join(loc) or None)
            )
        return cls(errors=items)


class RateLimitedError(ApiError):
    """Too many requests for the key of a rate-limit policy."""

    kind = ErrorKind.RATE_LIMIT
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class UnauthorizedError(ApiError):
    """Missing or invalid credentials or tokens."""

    kind = ErrorKind.UNAUTHORIZED
    status_code = status.HTTP_401_UNAUTHORIZED


class CsrfError(ApiError):
    """Double-submit CSRF check failed."""

    kind = ErrorKind.CSRF
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, detail: str = "Invalid CSRF token") -> None:
        super().__init__(detail, attr="csrf")


class SecurityAlertError(ApiError):
    """A security event (e.g. refresh token reuse) that already triggered revocation."""

    kind = ErrorKind.SECURITY_ALERT
    status_code = status.HTTP_403_FORBIDDEN


class InternalError(ApiError):
    """Infrastructure failure; the client only ever sees a sanitized message."""

    kind = ErrorKind.INTERNAL
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ServiceUnavailableError(InternalError):
    """Dependency unreachable, reported by connectivity checks."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class RateLimiterUnavailableError(InternalError):
    """The counter store could not be reached; requests are refused, not allowed."""

    def __init__(self, detail: str = INTERNAL_ERROR_DETAIL) -> None:
        super().__init__(detail)


async def api_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Convert an ApiError into the error envelope."""
    assert isinstance(exc, ApiError)

    if exc.status_code >= 500:
        logger.error(
            "api_error",
            kind=exc.kind.value,
            status_code=exc.status_code,
            path=request.url.path,
            error=str(exc),
            exc_info=exc.__cause__ if exc.__cause__ is not None else False,
        )

    return api_error(exc.status_code, exc.errors, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Convert FastAPI parameter validation failures into a 400 envelope."""
    assert isinstance(exc, RequestValidationError)
    failure = RequestValidationFailed.from_pydantic(exc)
    return api_error(failure.status_code, failure.errors)


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Convert framework HTTP exceptions (404, 405, ...) into the error envelope."""
    assert isinstance(exc, StarletteHTTPException)
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return api_error(
        exc.status_code,
        [ErrorItem(detail=detail)],
        headers=getattr(exc, "headers", None),
    )


async def database_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Storage failures and timeouts are server errors, never a pass-through."""
    logger.error(
        "database_error",
        path=request.url.path,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return api_error(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        [ErrorItem(detail=INTERNAL_ERROR_DETAIL)],
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected failures. Details stay in the server log."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return api_error(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        [ErrorItem(detail=INTERNAL_ERROR_DETAIL)],
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Example:
        >>> app = FastAPI()
        >>> register_exception_handlers(app)
    """
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
