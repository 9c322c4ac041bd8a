#!/usr/bin/env python3
"""
Approve or reject a pending package request from the command line.

Usage:
    python scripts/process_package_request.py 42 approve --admin-id 1
    python scripts/process_package_request.py 42 reject --notes "duplicate"
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from app.config.database import create_engine_from_settings, create_session_maker
from app.config.logging import setup_logging
from app.config.settings import settings
from app.models.enums import ApprovalDecision
from app.services.package_approval import PackageApprovalService
from app.utils.exceptions import (
    AlreadyProcessedError,
    PackageApprovalError,
    is_retry_safe,
)


async def process(args: argparse.Namespace) -> int:
    engine = create_engine_from_settings()
    service = PackageApprovalService(create_session_maker(engine), settings)

    try:
        result = await service.approve_or_reject_request(
            args.request_id,
            args.decision,
            admin_notes=args.notes,
            admin_id=args.admin_id,
        )
    except AlreadyProcessedError as e:
        logger.info(f"Request {e.request_id} already {e.status}, nothing to do")
        return 0
    except PackageApprovalError as e:
        hint = " (safe to retry)" if is_retry_safe(e) else ""
        logger.error(f"{type(e).__name__}: {e}{hint}")
        return 1
    finally:
        await engine.dispose()

    logger.success(f"Request {result.request_id} -> {result.status}")
    for payout in result.beneficiaries:
        logger.info(
            f"  user {payout.user_id}: {payout.type} "
            f"(depth {payout.depth}) ${payout.amount}"
        )
    for change in result.rank_changes:
        logger.info(
            f"  user {change.user_id} promoted to {change.new_rank_title} "
            f"({change.points} points)"
        )
    if result.resumed:
        logger.warning("  ledger rows already existed; approval resumed")
    if result.forfeited_amount:
        logger.info(f"  forfeited: ${result.forfeited_amount}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Approve or reject a pending package request"
    )
    parser.add_argument("request_id", type=int, help="Package request ID")
    parser.add_argument(
        "decision",
        choices=[d.value for d in ApprovalDecision],
        help="Administrator decision",
    )
    parser.add_argument("--notes", default=None, help="Admin notes")
    parser.add_argument(
        "--admin-id", type=int, default=None, help="Acting administrator ID"
    )
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(process(args)))


if __name__ == "__main__":
    main()
