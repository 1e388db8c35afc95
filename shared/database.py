"""
Database service for PostgreSQL integration.
Provides the asyncpg connection pool used by the restriction store.

The schema (users, roles, ip_restrictions) is managed by alembic migrations.
"""
import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg
from asyncpg import Pool

logger = logging.getLogger(__name__)


class DatabaseService:
    """Async connection pool wrapper."""

    def __init__(self):
        self._pool: Optional[Pool] = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        """Check if database connection is established."""
        return self._pool is not None and not self._pool._closed

    async def connect(self, database_url: str = None, max_retries: int = 5, retry_delay: float = 2.0) -> bool:
        """
        Initialize database connection pool with retry logic.
        Returns True if connection successful, False otherwise.

        Args:
            database_url: Optional database URL. Falls back to DATABASE_URL env var.
            max_retries: Maximum number of connection attempts (default 5).
            retry_delay: Initial delay between retries in seconds, doubles each attempt.
        """
        if not database_url:
            database_url = os.environ.get("DATABASE_URL")
        if not database_url:
            logger.warning("DATABASE_URL not configured, database features disabled")
            return False

        # asyncpg does not understand SQLAlchemy driver suffixes
        database_url = database_url.replace("postgresql+asyncpg://", "postgresql://")

        min_size = int(os.environ.get("DB_POOL_MIN_SIZE", 2))
        max_size = int(os.environ.get("DB_POOL_MAX_SIZE", 10))

        async with self._lock:
            if self._pool is not None:
                return True

            delay = retry_delay
            for attempt in range(1, max_retries + 1):
                try:
                    logger.debug("Connecting to PostgreSQL (attempt %d/%d)...", attempt, max_retries)
                    self._pool = await asyncpg.create_pool(
                        dsn=database_url,
                        min_size=min_size,
                        max_size=max_size,
                        command_timeout=30,
                    )
                    logger.info("Database connection established")
                    return True
                except (OSError, asyncpg.PostgresError) as e:
                    self._pool = None
                    if attempt < max_retries:
                        logger.warning(
                            "Database connection attempt %d/%d failed: %s. Retrying in %.0fs...",
                            attempt, max_retries, e, delay,
                        )
                        await asyncio.sleep(delay)
                        delay = min(delay * 2, 30)
                    else:
                        logger.error("Failed to connect to database after %d attempts: %s", max_retries, e)
                        return False

        return False

    async def disconnect(self) -> None:
        """Close database connection pool."""
        async with self._lock:
            if self._pool is not None:
                await self._pool.close()
                self._pool = None
                logger.info("Database disconnected")

    @asynccontextmanager
    async def acquire(self):
        """Acquire a connection from the pool."""
        if self._pool is None:
            raise RuntimeError("Database not connected")

        async with self._pool.acquire() as conn:
            yield conn


db_service = DatabaseService()
