"""
Database configuration and session management.

The engine is owned by a DatabaseManager singleton that connects lazily:
the first caller starts a single initialization task and every concurrent
caller awaits that same task, so a burst of first requests opens one pool.
"""

import asyncio
from collections.abc import AsyncGenerator, AsyncIterator, Callable
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

EngineFactory = Callable[[], AsyncEngine]


def build_engine() -> AsyncEngine:
    """
    Create the async engine from settings.

    Pool sizing only applies to server databases; SQLite uses its own pool.
    """
    kwargs: dict[str, Any] = {"echo": settings.DB_ECHO}
    if not settings.DATABASE_URL.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_pre_ping=True,  # Verify connections before using
            pool_recycle=settings.DB_POOL_RECYCLE,
        )
    return create_async_engine(settings.DATABASE_URL, **kwargs)


class DatabaseManager:
    """
    Lazily-connected owner of the engine and session factory.

    Usage:
        async with database.session() as db:
            await db.execute(...)
    """

    def __init__(self, engine_factory: EngineFactory = build_engine, min_connections: int = 0):
        self._engine_factory = engine_factory
        self._min_connections = min_connections
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None
        self._init_task: asyncio.Task[AsyncEngine] | None = None

    async def connect(self) -> AsyncEngine:
        """
        Return the engine, creating it on first use.

        Concurrent first callers share one initialization task. If it fails,
        the task is dropped so the next call retries.
        """
        if self._engine is not None:
            return self._engine

        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())

        task = self._init_task
        try:
            # shield: a cancelled waiter must not cancel the shared initialization
            return await asyncio.shield(task)
        except Exception:
            if self._init_task is task:
                self._init_task = None
            raise

    async def _initialize(self) -> AsyncEngine:
        engine = self._engine_factory()
        try:
            await self._warm_pool(engine)
        except Exception:
            await engine.dispose()
            logger.error("database_connect_failed", exc_info=True)
            raise

        self._sessionmaker = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        self._engine = engine
        logger.info("database_connected", warm_connections=self._min_connections)
        return engine

    async def _warm_pool(self, engine: AsyncEngine) -> None:
        """Open min_connections connections up front (at least one, to fail fast)."""
        async with AsyncExitStack() as stack:
            first = await stack.enter_async_context(engine.connect())
            for _ in range(self._min_connections - 1):
                await stack.enter_async_context(engine.connect())
            await first.execute(text("SELECT 1"))

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Scoped session: commit on success, rollback on error."""
        await self.connect()
        assert self._sessionmaker is not None

        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> None:
        """Round-trip a trivial query. Raises on any connectivity problem."""
        engine = await self.connect()
        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))

    def status(self) -> dict[str, bool]:
        """Connection state for health checks and debugging."""
        return {
            "is_connected": self._engine is not None,
            "is_connecting": self._init_task is not None and self._engine is None,
        }

    async def disconnect(self) -> None:
        """Dispose the engine. Safe to call when not connected."""
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("database_disconnected")
        self._engine = None
        self._sessionmaker = None
        self._init_task = None


database = DatabaseManager(min_connections=settings.DB_MIN_POOL_SIZE)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.

    Usage in FastAPI:
        @router.get("/me")
        async def me(db: Annotated[AsyncSession, Depends(get_db)]):
            ...
    """
    async with database.session() as session:
        yield session
