#!/usr/bin/env python3
"""
Initialize database tables and seed the default rank table.

Usage:
    python scripts/init_database.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger
from sqlalchemy import select

from app.config.business_constants import DEFAULT_RANKS
from app.config.database import create_engine_from_settings, create_session_maker
from app.models import Base, Rank

# Configure logger for script
logger.remove()
logger.add(sys.stderr, level="INFO")


async def init_database() -> None:
    """Create all database tables and insert missing default ranks."""
    logger.info("Connecting to database...")
    engine = create_engine_from_settings()

    try:
        async with engine.begin() as conn:
            logger.info("Creating tables (checkfirst=True)...")
            await conn.run_sync(Base.metadata.create_all, checkfirst=True)

        session_maker = create_session_maker(engine)
        async with session_maker() as session:
            async with session.begin():
                result = await session.execute(select(Rank.title))
                existing = set(result.scalars().all())

                for title, required_points, details in DEFAULT_RANKS:
                    if title in existing:
                        continue
                    session.add(
                        Rank(
                            title=title,
                            required_points=required_points,
                            details=details,
                        )
                    )
                    logger.info(
                        f"Seeded rank {title!r} ({required_points} points)"
                    )
    finally:
        await engine.dispose()

    logger.success("Database initialized successfully!")


if __name__ == "__main__":
    asyncio.run(init_database())
