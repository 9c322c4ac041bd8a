"""
Reconciliation service.

Repairs package requests left "failed" although their commission ledger
was fully written. Only the request status and notes change; ledger rows
are never touched.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config.settings import Settings, settings
from app.models.earning import Earning
from app.models.enums import EarningType, PackageRequestStatus
from app.repositories.earning_repository import EarningRepository
from app.repositories.package_request_repository import (
    PackageRequestRepository,
)
from app.services.base_service import log_operation

_EARNING_TYPES = frozenset(t.value for t in EarningType)


@dataclass(frozen=True)
class ReconciliationEvidence:
    """Ledger rows backing a repair."""

    earning_ids: tuple[int, ...]
    count: int
    total_amount: Decimal
    beneficiaries: tuple[int, ...]

    @classmethod
    def from_earnings(cls, earnings: Sequence[Earning]) -> "ReconciliationEvidence":
        return cls(
            earning_ids=tuple(e.id for e in earnings),
            count=len(earnings),
            total_amount=sum((e.amount for e in earnings), Decimal("0")),
            beneficiaries=tuple(sorted({e.user_id for e in earnings})),
        )


@dataclass
class ReconciliationOutcome:
    """Result for one inspected request."""

    request_id: int
    previous_status: str
    new_status: str
    evidence: ReconciliationEvidence | None = None
    applied: bool = False
    errors: list[str] = field(default_factory=list)


def check_evidence(request_id: int, earnings: Sequence[Earning]) -> list[str]:
    """
    Check that ledger rows are a clean, complete write for a request.

    Returns:
        Problems found; empty when the evidence can be trusted
    """
    problems: list[str] = []
    if not earnings:
        problems.append("no ledger rows")

    seen_keys: set[str] = set()
    for earning in earnings:
        if earning.package_request_id != request_id:
            problems.append(
                f"earning {earning.id} references request "
                f"{earning.package_request_id}"
            )
        if earning.amount is None or earning.amount <= 0:
            problems.append(f"earning {earning.id} has non-positive amount")
        if earning.type not in _EARNING_TYPES:
            problems.append(f"earning {earning.id} has unknown type {earning.type!r}")

        expected_key = Earning.build_idempotency_key(
            request_id, earning.user_id, earning.type
        )
        if earning.idempotency_key != expected_key:
            problems.append(
                f"earning {earning.id} has malformed key "
                f"{earning.idempotency_key!r}"
            )
        if earning.idempotency_key in seen_keys:
            problems.append(
                f"duplicate idempotency key {earning.idempotency_key!r}"
            )
        seen_keys.add(earning.idempotency_key)

    return problems


def repair_note(evidence: ReconciliationEvidence) -> str:
    return (
        "Auto-fixed: Commissions were successfully distributed "
        f"({evidence.count} records, ${evidence.total_amount:.2f} total), "
        "status updated to approved"
    )


class ReconciliationService:
    """Finds and repairs failed requests with complete ledger evidence."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: Settings = settings,
    ) -> None:
        self.session_factory = session_factory
        self.config = config
        self.logger = logger.bind(service=self.__class__.__name__)

    @log_operation
    async def reconcile_failed_requests(
        self, dry_run: bool = False
    ) -> list[ReconciliationOutcome]:
        """
        Flip failed requests with trustworthy ledger rows to approved.

        Each request is repaired in its own transaction under a row lock,
        so one bad request never blocks the others. Running again after a
        full pass changes nothing.

        Args:
            dry_run: Report candidates without changing anything

        Returns:
            One outcome per inspected request, including skipped ones
        """
        outcomes: list[ReconciliationOutcome] = []
        last_id = 0

        # Page by ID so requests left failed never hide later candidates
        while True:
            async with self.session_factory() as session:
                candidate_ids = await PackageRequestRepository(
                    session
                ).find_failed_with_earnings_ids(
                    after_id=last_id,
                    limit=self.config.reconciliation_batch_size,
                )
            if not candidate_ids:
                break

            self.logger.info(
                "Reconciliation candidates found",
                extra={
                    "count": len(candidate_ids),
                    "after_id": last_id,
                    "dry_run": dry_run,
                },
            )

            for request_id in candidate_ids:
                try:
                    outcome = await self._reconcile_one(request_id, dry_run)
                except SQLAlchemyError as e:
                    self.logger.error(
                        "Reconciliation failed for request",
                        extra={"request_id": request_id, "error": str(e)},
                    )
                    outcome = ReconciliationOutcome(
                        request_id=request_id,
                        previous_status=PackageRequestStatus.FAILED.value,
                        new_status=PackageRequestStatus.FAILED.value,
                        errors=[f"storage error: {e}"],
                    )
                if outcome is not None:
                    outcomes.append(outcome)

            last_id = candidate_ids[-1]

        repaired = sum(1 for o in outcomes if o.applied)
        self.logger.info(
            "Reconciliation finished",
            extra={
                "inspected": len(outcomes),
                "repaired": repaired,
                "skipped": len(outcomes) - repaired,
                "dry_run": dry_run,
            },
        )
        return outcomes

    async def _reconcile_one(
        self, request_id: int, dry_run: bool
    ) -> ReconciliationOutcome | None:
        async with self.session_factory() as session:
            async with session.begin():
                request = await PackageRequestRepository(
                    session
                ).get_for_update(request_id)
                if (
                    request is None
                    or request.status != PackageRequestStatus.FAILED
                ):
                    # Repaired or changed since the scan
                    return None

                earnings = await EarningRepository(
                    session
                ).get_for_request(request_id)
                evidence = ReconciliationEvidence.from_earnings(earnings)
                outcome = ReconciliationOutcome(
                    request_id=request_id,
                    previous_status=request.status,
                    new_status=request.status,
                    evidence=evidence,
                )

                problems = check_evidence(request_id, earnings)
                if problems:
                    self.logger.error(
                        "Ledger evidence inconsistent, request needs "
                        "operator review",
                        extra={"request_id": request_id, "problems": problems},
                    )
                    outcome.errors.extend(problems)
                    return outcome

                if dry_run:
                    self.logger.info(
                        "Would repair package request",
                        extra={
                            "request_id": request_id,
                            "records": evidence.count,
                            "total": str(evidence.total_amount),
                        },
                    )
                    return outcome

                note = repair_note(evidence)
                request.status = PackageRequestStatus.APPROVED.value
                request.admin_notes = (
                    f"{request.admin_notes}\n{note}"
                    if request.admin_notes
                    else note
                )
                outcome.new_status = request.status
                outcome.applied = True

                self.logger.info(
                    "Package request repaired",
                    extra={
                        "request_id": request_id,
                        "records": evidence.count,
                        "total": str(evidence.total_amount),
                        "beneficiaries": list(evidence.beneficiaries),
                    },
                )
                return outcome
