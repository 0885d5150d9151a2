"""
Application status endpoints: liveness, database connectivity and build version.
"""

import subprocess
from functools import lru_cache

from fastapi import APIRouter, Response, status
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.core.database import database
from app.core.errors import ServiceUnavailableError
from app.core.json_response import api_success
from app.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/app", tags=["Application"])


@lru_cache(maxsize=1)
def get_commit_hash() -> str:
    """Current git commit, or "unknown" outside a checkout."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            timeout=5,
            check=True,
        )
    except (OSError, subprocess.SubprocessError):
        return "unknown"
    return result.stdout.strip() or "unknown"


@router.get("/health")
async def health() -> Response:
    """Health check endpoint"""
    return api_success(status.HTTP_200_OK, "Server is alive")


@router.get("/db-check")
async def db_check() -> Response:
    """
    Round-trip a query through the connection manager.

    Returns 503 when the database cannot be reached.
    """
    try:
        await database.ping()
    except (SQLAlchemyError, OSError, TimeoutError) as e:
        logger.error("database_check_failed", error_type=type(e).__name__, error=str(e))
        raise ServiceUnavailableError("Database connection failed", attr="database") from e

    return api_success(
        status.HTTP_200_OK,
        "Database connection successful",
        data=database.status(),
    )


@router.get("/version")
async def version() -> Response:
    """Application version and the commit it was built from."""
    return api_success(
        status.HTTP_200_OK,
        "Version information retrieved",
        data={"version": settings.VERSION, "commit": get_commit_hash()},
    )
