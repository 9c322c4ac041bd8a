"""
Package approval service.

Runs the approval or rejection of a package request as one atomic unit of
work: lock the request, validate, write the commission ledger, credit the
upline with money and points, grant the package and recompute ranks.
"""

import asyncio
import random
import time
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config.settings import Settings, settings
from app.models.enums import ApprovalDecision, PackageRequestStatus
from app.models.package import Package
from app.models.package_request import PackageRequest
from app.models.user import User
from app.repositories.earning_repository import EarningRepository
from app.repositories.package_repository import PackageRepository
from app.repositories.package_request_repository import (
    PackageRequestRepository,
)
from app.repositories.rank_repository import RankRepository
from app.repositories.user_repository import UserRepository
from app.services.base_service import log_operation
from app.services.commission.commission_calculator import (
    Beneficiary,
    CommissionSchedule,
    calculate_commissions,
)
from app.services.earnings.ledger_writer import EarningsLedgerWriter
from app.services.package_approval.results import (
    ApprovalResult,
    BeneficiaryPayout,
    RankChange,
)
from app.services.rank.rank_resolver import RankSnapshot
from app.services.referral.chain_manager import ReferralChainManager
from app.utils.db_errors import is_lock_timeout, is_statement_timeout
from app.utils.exceptions import (
    AlreadyProcessedError,
    ApprovalConfigurationError,
    CommissionScheduleError,
    ConcurrencyTimeoutError,
    LedgerConflictError,
    PackageApprovalError,
    RankConfigurationError,
    RequestNotFoundError,
    StorageFailureError,
    ValidationError,
)

REJECTION_REASON = "rejected by administrator"


class PackageApprovalService:
    """
    Administrator-facing approval engine.

    Each call opens its own session; the service is safe to share between
    concurrent callers.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: Settings = settings,
    ) -> None:
        """
        Initialize approval service.

        Args:
            session_factory: Factory producing sessions on the target DB
            config: Engine settings (timeouts, retries, depth cap)
        """
        self.session_factory = session_factory
        self.config = config
        self.logger = logger.bind(service=self.__class__.__name__)

    @log_operation
    async def approve_or_reject_request(
        self,
        request_id: int,
        decision: ApprovalDecision | str,
        admin_notes: str | None = None,
        admin_id: int | None = None,
    ) -> ApprovalResult:
        """
        Approve or reject a pending package request.

        Lock contention is retried with exponential backoff; the request
        stays pending when every attempt fails.

        Args:
            request_id: PackageRequest ID
            decision: "approve" or "reject"
            admin_notes: Notes stored on the request
            admin_id: Administrator performing the action

        Returns:
            ApprovalResult of the committed unit of work

        Raises:
            RequestNotFoundError: Unknown request
            AlreadyProcessedError: Request is no longer pending
            ValidationError: Buyer or package invalid (request marked failed)
            LedgerConflictError: Ledger rows exist for a request that is
                being rejected or no longer validates
            ApprovalConfigurationError: Rank table or commission schedule
                is unusable
            ConcurrencyTimeoutError: Lock or time budget exhausted
            StorageFailureError: Any other storage error
        """
        decision = ApprovalDecision(decision)
        max_attempts = self.config.approval_max_attempts
        delay_base = self.config.approval_retry_delay_base

        for attempt in range(max_attempts):
            try:
                result = await self._run_unit_of_work(
                    request_id, decision, admin_notes, admin_id
                )
            except PackageApprovalError:
                raise
            except SQLAlchemyError as e:
                if is_statement_timeout(e):
                    budget = self.config.approval_execution_budget_seconds
                    self.logger.error(
                        "Execution budget exceeded during package approval",
                        extra={
                            "request_id": request_id,
                            "budget_seconds": budget,
                        },
                    )
                    raise ConcurrencyTimeoutError(
                        f"Execution budget of {budget}s exceeded while "
                        f"processing request {request_id}",
                        request_id=request_id,
                    ) from e

                if not is_lock_timeout(e):
                    self.logger.error(
                        "Storage failure during package approval",
                        extra={
                            "request_id": request_id,
                            "decision": decision.value,
                            "error": str(e),
                        },
                    )
                    raise StorageFailureError(
                        f"Storage failure while processing request "
                        f"{request_id}: {e}",
                        request_id=request_id,
                    ) from e

                if attempt < max_attempts - 1:
                    delay = delay_base * (2 ** attempt) + random.uniform(
                        0, delay_base
                    )
                    self.logger.warning(
                        "Package request locked, retrying",
                        extra={
                            "request_id": request_id,
                            "attempt": attempt + 1,
                            "max_attempts": max_attempts,
                            "delay_seconds": round(delay, 3),
                        },
                    )
                    await asyncio.sleep(delay)
                    continue

                self.logger.error(
                    "Package request lock not obtained, giving up",
                    extra={"request_id": request_id, "attempts": max_attempts},
                )
                raise ConcurrencyTimeoutError(
                    f"Could not lock package request {request_id} after "
                    f"{max_attempts} attempts",
                    request_id=request_id,
                ) from e

            if result.failure_reason and decision is ApprovalDecision.APPROVE:
                raise ValidationError(result.failure_reason, request_id=request_id)
            return result

        # Unreachable: approval_max_attempts >= 1
        raise ConcurrencyTimeoutError(
            f"No attempt made for request {request_id}", request_id=request_id
        )

    async def _run_unit_of_work(
        self,
        request_id: int,
        decision: ApprovalDecision,
        admin_notes: str | None,
        admin_id: int | None,
    ) -> ApprovalResult:
        deadline = (
            time.monotonic() + self.config.approval_execution_budget_seconds
        )

        async with self.session_factory() as session:
            async with session.begin():
                await self._apply_timeouts(session)

                request_repo = PackageRequestRepository(session)
                request = await request_repo.get_for_update(request_id)
                if request is None:
                    raise RequestNotFoundError(
                        f"Package request {request_id} not found",
                        request_id=request_id,
                    )
                if (
                    request.status == PackageRequestStatus.PENDING
                    and not await request_repo.claim_pending(request_id)
                ):
                    # Processed by a concurrent caller since the read
                    request = await request_repo.get_for_update(request_id)
                if request.status != PackageRequestStatus.PENDING:
                    self.logger.info(
                        "Package request already processed",
                        extra={
                            "request_id": request_id,
                            "status": request.status,
                        },
                    )
                    raise AlreadyProcessedError(request_id, request.status)

                if decision is ApprovalDecision.REJECT:
                    return await self._reject(
                        session, request, admin_notes, admin_id
                    )
                return await self._approve(
                    session, request, admin_notes, admin_id, deadline
                )

    async def _apply_timeouts(self, session: AsyncSession) -> None:
        """Bound lock waits and statement time for this transaction."""
        if not self.config.is_postgres:
            return
        lock_ms = int(self.config.approval_lock_wait_seconds * 1000)
        budget_ms = int(self.config.approval_execution_budget_seconds * 1000)
        await session.execute(text(f"SET LOCAL lock_timeout = '{lock_ms}ms'"))
        await session.execute(
            text(f"SET LOCAL statement_timeout = '{budget_ms}ms'")
        )

    async def _reject(
        self,
        session: AsyncSession,
        request: PackageRequest,
        admin_notes: str | None,
        admin_id: int | None,
    ) -> ApprovalResult:
        if await EarningsLedgerWriter(session).has_entries(request.id):
            self.logger.error(
                "Rejection refused: request already has ledger rows",
                extra={"request_id": request.id, "admin_id": admin_id},
            )
            raise LedgerConflictError(
                f"Package request {request.id} has ledger entries and "
                "cannot be rejected",
                request_id=request.id,
            )

        self._finish(
            request, PackageRequestStatus.FAILED, admin_notes, admin_id
        )
        request.failure_reason = REJECTION_REASON

        self.logger.info(
            "Package request rejected",
            extra={"request_id": request.id, "admin_id": admin_id},
        )
        return ApprovalResult(
            request_id=request.id,
            status=PackageRequestStatus.FAILED,
        )

    async def _approve(
        self,
        session: AsyncSession,
        request: PackageRequest,
        admin_notes: str | None,
        admin_id: int | None,
        deadline: float,
    ) -> ApprovalResult:
        user_repo = UserRepository(session)
        earning_repo = EarningRepository(session)
        ledger = EarningsLedgerWriter(session)

        buyer = await user_repo.get_for_update(request.user_id)
        package = await PackageRepository(session).get_by_id(request.package_id)

        failure_reason = self._validate(buyer, package)
        if failure_reason is not None:
            if await ledger.has_entries(request.id):
                self.logger.error(
                    "Validation failed for a request with ledger rows",
                    extra={"request_id": request.id, "reason": failure_reason},
                )
                raise LedgerConflictError(
                    f"Package request {request.id} has ledger entries but "
                    f"cannot be approved: {failure_reason}",
                    request_id=request.id,
                )

            self._finish(
                request, PackageRequestStatus.FAILED, admin_notes, admin_id
            )
            request.failure_reason = failure_reason
            self.logger.warning(
                "Package request failed validation",
                extra={"request_id": request.id, "reason": failure_reason},
            )
            return ApprovalResult(
                request_id=request.id,
                status=PackageRequestStatus.FAILED,
                failure_reason=failure_reason,
            )

        try:
            ranks = await RankRepository(session).get_snapshot()
        except RankConfigurationError as e:
            raise self._configuration_error(request.id, e) from e

        resumed = await ledger.has_entries(request.id)
        forfeited = Decimal("0")
        upline: list[User] = []

        if resumed:
            self.logger.warning(
                "Partial write detected, resuming approval without "
                "recomputing commissions",
                extra={"request_id": request.id},
            )
        else:
            if time.monotonic() > deadline:
                raise ConcurrencyTimeoutError(
                    f"Execution budget exhausted before ledger writes for "
                    f"request {request.id}",
                    request_id=request.id,
                )

            # Points reach the whole upline, commissions only the
            # schedule's depths
            upline = await ReferralChainManager(session).get_ancestor_chain(
                buyer, self.config.max_referral_depth
            )
            try:
                schedule = CommissionSchedule.from_package(package)
                depth = min(schedule.depth, self.config.max_referral_depth)
                plan = calculate_commissions(
                    package.price,
                    schedule,
                    [
                        Beneficiary(user_id=u.id, username=u.username)
                        for u in upline[:depth]
                    ],
                    self.config.commission_overflow_policy,
                )
            except CommissionScheduleError as e:
                raise self._configuration_error(request.id, e) from e

            token = uuid4().hex
            await ledger.write(request, plan.payouts, token)
            request.approval_token = token
            forfeited = plan.forfeited_amount

            if forfeited > 0:
                self.logger.info(
                    "Commission forfeited for short referral chain",
                    extra={
                        "request_id": request.id,
                        "chain_length": min(len(upline), depth),
                        "schedule_depth": schedule.depth,
                        "forfeited_amount": str(forfeited),
                    },
                )

        earnings = await earning_repo.get_for_request(request.id)

        # Grant package and recompute rank
        now = datetime.now(UTC)
        buyer.current_package_id = package.id
        buyer.package_expires_at = now + timedelta(
            days=self.config.package_validity_days
        )
        buyer.points = buyer.points + package.points

        rank_changes: list[RankChange] = []
        self._apply_rank(buyer, ranks, rank_changes)

        for ancestor in upline:
            member = await user_repo.add_points(ancestor.id, package.points)
            if member is not None:
                self._apply_rank(member, ranks, rank_changes)

        for beneficiary_id in sorted({e.user_id for e in earnings}):
            await user_repo.refresh_total_earnings(beneficiary_id)

        self._finish(
            request, PackageRequestStatus.APPROVED, admin_notes, admin_id
        )
        request.failure_reason = None
        await session.flush()

        self.logger.info(
            "Package request approved",
            extra={
                "request_id": request.id,
                "user_id": buyer.id,
                "package_id": package.id,
                "admin_id": admin_id,
                "payouts": len(earnings),
                "points_credited_to": len(upline) + 1,
                "rank_changes": len(rank_changes),
                "resumed": resumed,
            },
        )

        return ApprovalResult(
            request_id=request.id,
            status=PackageRequestStatus.APPROVED,
            beneficiaries=[
                BeneficiaryPayout(
                    earning_id=e.id,
                    user_id=e.user_id,
                    type=e.type,
                    depth=e.depth,
                    amount=e.amount,
                )
                for e in earnings
            ],
            rank_changes=rank_changes,
            resumed=resumed,
            forfeited_amount=forfeited,
        )

    def _apply_rank(
        self,
        user: User,
        ranks: RankSnapshot,
        rank_changes: list[RankChange],
    ) -> None:
        """Set the user's rank from their points, recording any change."""
        tier = ranks.resolve_rank(user.points)
        if user.rank_id == tier.rank_id:
            return

        rank_changes.append(
            RankChange(
                user_id=user.id,
                previous_rank_id=user.rank_id,
                new_rank_id=tier.rank_id,
                new_rank_title=tier.title,
                points=user.points,
            )
        )
        self.logger.info(
            "Rank changed",
            extra={
                "user_id": user.id,
                "previous_rank_id": user.rank_id,
                "new_rank_id": tier.rank_id,
                "new_rank": tier.title,
                "points": user.points,
            },
        )
        user.rank_id = tier.rank_id

    def _configuration_error(
        self, request_id: int, error: Exception
    ) -> ApprovalConfigurationError:
        self.logger.error(
            "Approval configuration is unusable",
            extra={"request_id": request_id, "error": str(error)},
        )
        return ApprovalConfigurationError(
            f"Cannot approve package request {request_id}: {error}",
            request_id=request_id,
        )

    @staticmethod
    def _validate(buyer: User | None, package: Package | None) -> str | None:
        """Get the reason a request cannot be approved, if any."""
        if buyer is None:
            return "buyer not found"
        if not buyer.is_active:
            return "buyer account is inactive"
        if buyer.is_banned:
            return "buyer account is banned"
        if package is None:
            return "package not found"
        if not package.is_active:
            return "package is inactive"
        return None

    @staticmethod
    def _finish(
        request: PackageRequest,
        status: PackageRequestStatus,
        admin_notes: str | None,
        admin_id: int | None,
    ) -> None:
        request.status = status.value
        if admin_notes is not None:
            request.admin_notes = admin_notes
        request.processed_by = admin_id
        request.processed_at = datetime.now(UTC)
