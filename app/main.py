"""
FastAPI Application - Booking Auth API
Authentication and session security for the booking site
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1 import router as api_v1_router
from app.config import CSRF_HEADER_NAME, settings
from app.core.csrf import CSRFMiddleware
from app.core.database import database
from app.core.errors import register_exception_handlers
from app.core.logging import configure_logging, get_logger
from app.core.redis import close_redis
from app.core.request_context import REQUEST_ID_HEADER, RequestContextMiddleware
from app.services.session_metadata import geo_locator

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup and shutdown events"""
    # Startup
    configure_logging()
    logger.info(
        "app_starting",
        environment=settings.ENVIRONMENT,
        database=settings.DATABASE_URL.split("@")[1] if "@" in settings.DATABASE_URL else "configured",
    )
    yield
    # Shutdown
    await database.disconnect()
    await close_redis()
    geo_locator.close()
    logger.info("app_shutdown")


# Create FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Authentication and session security API for the booking site",
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

register_exception_handlers(app)

# Middleware runs in reverse order of registration: CORS, request context, CSRF
app.add_middleware(CSRFMiddleware)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint - API information"""
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "status": "running",
        "docs": "/docs",
        "csrf_header": CSRF_HEADER_NAME,
    }


app.include_router(api_v1_router, prefix=settings.API_V1_STR)
