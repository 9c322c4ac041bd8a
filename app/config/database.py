"""
Database configuration.

Async SQLAlchemy engine and session factory shared by services and scripts.
"""

from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from app.config.settings import Settings, settings


def create_engine_from_settings(
    config: Settings = settings, pooled: bool = True
) -> AsyncEngine:
    """
    Create async engine.

    PostgreSQL connections run at READ COMMITTED; approvals rely on
    row locks and explicit existence checks, not snapshot isolation.

    Args:
        config: Settings instance
        pooled: False to open a fresh connection per session (NullPool)

    Returns:
        Configured AsyncEngine
    """
    kwargs: dict[str, Any] = {"echo": config.database_echo}
    if config.is_postgres:
        kwargs.update(isolation_level="READ COMMITTED", pool_pre_ping=True)
        if pooled:
            kwargs.update(pool_size=10, max_overflow=20)
    if not pooled:
        kwargs["poolclass"] = NullPool
    return create_async_engine(config.database_url, **kwargs)


def create_session_maker(
    engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Create session factory bound to engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async_engine = create_engine_from_settings()
async_session_maker = create_session_maker(async_engine)
