"""
Structured logging for the auth service, built on structlog.

Every log line is an event name plus key/value fields. Request-scoped fields
(request_id, user_id) live in structlog's contextvars and are merged into each
event; credential-bearing fields are masked before rendering.
"""

import logging
import sys
from typing import Any, cast

import structlog
from structlog.types import EventDict, Processor

from app.config import settings

REDACTED = "[redacted]"

# Field names that may carry credentials; matched case-insensitively as substrings
SENSITIVE_FIELDS = ("password", "token", "secret", "authorization", "cookie")


def redact_sensitive_fields(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credential-bearing values so secrets never reach a log sink."""
    for key in event_dict:
        lowered = key.lower()
        if any(name in lowered for name in SENSITIVE_FIELDS):
            event_dict[key] = REDACTED
    return event_dict


def configure_logging() -> None:
    """
    Configure structlog and the stdlib root logger.

    Development renders colored console lines; staging and production emit JSON.
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_sensitive_fields,
        structlog.processors.StackInfoRenderer(),
    ]

    renderer: list[Processor]
    if settings.ENVIRONMENT == "development":
        renderer = [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        renderer = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=shared_processors + renderer,
        wrapper_class=structlog.make_filtering_bound_logger(logging.NOTSET),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper()),
    )

    if settings.ENVIRONMENT != "development":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger bound to the given module name.

    Example:
        logger = get_logger(__name__)
        logger.warning("rate_limit_exceeded", action="login", scope="ip")
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))


def set_request_context(request_id: str) -> None:
    """Start a fresh log context for one request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)


def bind_user(user_id: int) -> None:
    """Attach the authenticated user to the remaining logs of this request."""
    structlog.contextvars.bind_contextvars(user_id=user_id)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
