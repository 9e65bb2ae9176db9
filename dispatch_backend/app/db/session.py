"""
Dispatch store engine and sessions.

Workflows commit explicitly and read rows back after conditional updates,
so sessions never autoflush and keep loaded attributes across commits.
The test harness builds its sessions from the same `SESSION_OPTIONS`.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from dispatch_backend.app.core.config import settings

SESSION_OPTIONS = {
    "class_": AsyncSession,
    "expire_on_commit": False,
    "autoflush": False,
}

engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=settings.db_pool_pre_ping,
)

AsyncSessionLocal = async_sessionmaker(engine, **SESSION_OPTIONS)

Base = declarative_base()


async def get_db():
    """
    Request-scoped session.

    Anything a handler left uncommitted is rolled back when the request ends,
    including after a storage error.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
