#!/usr/bin/env python3
"""
Repair package requests marked failed although commissions were written.

Usage:
    python scripts/reconcile_failed_requests.py --dry-run  # Preview changes
    python scripts/reconcile_failed_requests.py            # Apply changes
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from app.config.database import create_engine_from_settings, create_session_maker
from app.config.settings import settings
from app.services.reconciliation_service import ReconciliationService

# Configure logger
logger.remove()
logger.add(sys.stderr, level="INFO", format="{time:HH:mm:ss} | {level} | {message}")


async def reconcile(dry_run: bool) -> int:
    engine = create_engine_from_settings()
    try:
        service = ReconciliationService(create_session_maker(engine), settings)
        outcomes = await service.reconcile_failed_requests(dry_run=dry_run)
    finally:
        await engine.dispose()

    if not outcomes:
        logger.info("No failed requests with ledger rows found")
        return 0

    for outcome in outcomes:
        evidence = outcome.evidence
        summary = (
            f"{evidence.count} records, ${evidence.total_amount:.2f}"
            if evidence
            else "no evidence"
        )
        if outcome.errors:
            logger.error(
                f"Request {outcome.request_id}: skipped ({summary}): "
                + "; ".join(outcome.errors)
            )
        elif outcome.applied:
            logger.success(
                f"Request {outcome.request_id}: {outcome.previous_status} -> "
                f"{outcome.new_status} ({summary})"
            )
        else:
            logger.info(
                f"Request {outcome.request_id}: would be approved ({summary})"
            )

    repaired = sum(1 for o in outcomes if o.applied)
    failed = sum(1 for o in outcomes if o.errors)
    logger.info(
        f"Checked {len(outcomes)} requests: {repaired} repaired, "
        f"{failed} need review"
    )
    return 1 if failed else 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Reconcile failed package requests that have commissions"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Preview changes without applying them",
    )
    args = parser.parse_args()
    sys.exit(asyncio.run(reconcile(args.dry_run)))


if __name__ == "__main__":
    main()
