"""Async SQLAlchemy engine, session factory and database client."""

from typing import Dict, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from coverage_limits.core.config import DatabaseSettings, settings
from coverage_limits.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def build_engine(database: Optional[DatabaseSettings] = None) -> AsyncEngine:
    """Create the async engine; pool options apply to server databases only."""
    database = database or settings.database
    options = {"echo": database.echo, "future": True}
    if not database.url.startswith("sqlite"):
        options.update(pool_size=database.pool_size, max_overflow=database.max_overflow)
    return create_async_engine(database.url, **options)


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class DatabaseClient:
    """Database client with connection and schema management."""

    def __init__(self, engine: AsyncEngine):
        """Initialize database client.

        Args:
            engine: SQLAlchemy async engine
        """
        self.engine = engine
        self.session_maker = build_session_maker(engine)
        self._connected = False

    async def connect(self) -> bool:
        """Test database connection."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            self._connected = True
            LOGGER.info("Database connection successful")
            return True
        except Exception:
            self._connected = False
            LOGGER.error("Database connection failed", exc_info=True)
            raise

    async def disconnect(self) -> None:
        """Close database connection."""
        await self.engine.dispose()
        self._connected = False
        LOGGER.info("Database connection closed")

    async def create_tables(self) -> None:
        """Create tables that don't exist yet without touching existing ones."""
        # Registers the models on Base.metadata
        from coverage_limits.database import models  # noqa: F401

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            LOGGER.info("Database tables created/verified successfully")
        except Exception as e:
            LOGGER.error(
                "Failed to create database tables",
                exc_info=True,
                extra={"error": str(e)},
            )
            raise

    async def health_check(self) -> Dict[str, str]:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return {"status": "healthy"}
        except Exception as e:
            LOGGER.warning(f"Database health check failed: {str(e)}")
            return {"status": "unhealthy", "error": str(e)}
