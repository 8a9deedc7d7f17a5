"""
Database configuration and session management.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from monitor_api.core.config import settings

logger = structlog.get_logger(__name__)

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin123"


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


# Create async engine
engine = create_async_engine(
    settings.database.dsn,
    echo=settings.server.debug,
    pool_size=settings.database.pool_size,
    max_overflow=settings.database.max_overflow,
    pool_recycle=settings.database.pool_recycle,
    pool_pre_ping=True,
)

# Create async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Get database session for dependency injection.

    Yields:
        AsyncSession: Database session
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Get database session as a context manager.

    Example:
        async with get_db_context() as session:
            result = await session.execute(query)
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Initialize database (create tables if they don't exist)."""
    async with engine.begin() as conn:
        # Import all models here to ensure they are registered with Base
        from monitor_api import models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)


async def seed_default_admin(db: AsyncSession) -> bool:
    """
    Create the default operator account when the users table is empty.

    Returns:
        True if the account was created
    """
    from monitor_api.core.security import PasswordPolicy
    from monitor_api.models.user import User

    count = await db.scalar(select(func.count()).select_from(User))
    if count:
        return False

    db.add(User(username=DEFAULT_ADMIN_USERNAME, password=PasswordPolicy.hash(DEFAULT_ADMIN_PASSWORD)))
    await db.flush()
    logger.warning(
        "Default admin user created, change its password",
        username=DEFAULT_ADMIN_USERNAME,
    )
    return True


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
