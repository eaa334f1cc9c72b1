"""Database configuration and session management."""

import asyncio
import logging
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.core.errors import PortfolioError

logger = logging.getLogger(__name__)

engine_options = {
    "echo": settings.DEBUG,  # Only log SQL in debug mode
    "future": True,
    "pool_pre_ping": True,  # Verify connections before use
}
if not settings.is_sqlite:
    # Pool configuration for production
    engine_options.update(
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_timeout=30,  # Wait max 30s for a connection
    )

engine = create_async_engine(settings.DATABASE_URL, **engine_options)

if settings.is_sqlite:
    # pysqlite defers BEGIN and breaks SAVEPOINT; take over transaction control
    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")

# Create async session factory
AsyncSessionLocal = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session.

    The whole request is one database transaction: commit on success,
    roll back on any error so no partial write escapes.
    """
    from fastapi import HTTPException

    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except (HTTPException, PortfolioError):
            # Domain errors are normal flow control, not DB errors
            await session.rollback()
            raise
        except asyncio.CancelledError:
            logger.warning("Request cancelled, rolling back")
            await asyncio.shield(session.rollback())
            raise
        except Exception as e:
            logger.error(f"Database error, rolling back: {type(e).__name__}: {e}")
            await session.rollback()
            raise
        finally:
            await session.close()
