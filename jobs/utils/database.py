"""Database engine and sessions for worker tasks."""
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from app.config.database import create_engine_from_settings, create_session_maker
from app.config.settings import settings


def create_task_engine() -> AsyncEngine:
    """
    Create an engine for worker tasks.

    Uses NullPool: connections are not shared between the event loops of
    different worker threads.
    """
    return create_engine_from_settings(settings, pooled=False)


def create_task_session_maker(
    engine: AsyncEngine | None = None,
) -> async_sessionmaker:
    """Create a session maker for worker tasks."""
    if engine is None:
        engine = create_task_engine()
    return create_session_maker(engine)
