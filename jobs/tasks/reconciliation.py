"""
Package request reconciliation task.

Periodically repairs requests left failed despite a complete ledger.
"""

import dramatiq
from loguru import logger

from app.config.settings import settings
from app.services.reconciliation_service import ReconciliationService
from jobs.async_runner import run_async
from jobs.broker import broker  # noqa: F401  # actors bind to this broker
from jobs.utils.database import create_task_engine, create_task_session_maker

# 10 minutes
RECONCILIATION_TIME_LIMIT_MS = 600_000


@dramatiq.actor(max_retries=3, time_limit=RECONCILIATION_TIME_LIMIT_MS)
def reconcile_failed_package_requests(dry_run: bool = False) -> None:
    """
    Reconcile failed package requests that have ledger rows.

    Args:
        dry_run: Only report what would be repaired
    """
    logger.info("Starting package request reconciliation task...")
    run_async(_reconcile_async(dry_run))


async def _reconcile_async(dry_run: bool) -> None:
    engine = create_task_engine()
    try:
        service = ReconciliationService(
            create_task_session_maker(engine), settings
        )
        outcomes = await service.reconcile_failed_requests(dry_run=dry_run)
    finally:
        await engine.dispose()

    repaired = [o.request_id for o in outcomes if o.applied]
    needs_review = [o.request_id for o in outcomes if o.errors]

    if needs_review:
        logger.warning(
            "Reconciliation left requests for operator review",
            extra={"request_ids": needs_review},
        )
    logger.info(
        "Package request reconciliation completed",
        extra={
            "repaired": repaired,
            "needs_review": needs_review,
            "dry_run": dry_run,
        },
    )
