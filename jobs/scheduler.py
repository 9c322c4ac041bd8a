"""
Task scheduler.

Enqueues periodic engine tasks on the dramatiq broker. Run with
``python -m jobs.scheduler`` next to a dramatiq worker
(``dramatiq jobs.tasks.reconciliation``).
"""

import asyncio

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from app.config.logging import setup_logging
from app.config.settings import settings
from jobs.broker import broker  # noqa: F401  # registers the broker
from jobs.tasks.reconciliation import reconcile_failed_package_requests


def create_scheduler() -> AsyncIOScheduler:
    """Create the scheduler with the engine's periodic jobs."""
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        reconcile_failed_package_requests.send,
        "interval",
        minutes=settings.reconciliation_interval_minutes,
        id="reconcile_failed_package_requests",
        max_instances=1,
        coalesce=True,
    )
    return scheduler


async def main() -> None:
    setup_logging()
    scheduler = create_scheduler()
    scheduler.start()
    logger.info(
        "Scheduler started",
        extra={"jobs": [job.id for job in scheduler.get_jobs()]},
    )
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)


if __name__ == "__main__":
    asyncio.run(main())
