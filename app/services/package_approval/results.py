"""
Package approval result types.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from app.models.enums import PackageRequestStatus


@dataclass(frozen=True)
class BeneficiaryPayout:
    """Ledger entry credited for an approved request."""

    earning_id: int
    user_id: int
    type: str
    depth: int
    amount: Decimal


@dataclass(frozen=True)
class RankChange:
    """Rank transition caused by an approval."""

    user_id: int
    previous_rank_id: int | None
    new_rank_id: int
    new_rank_title: str
    points: int


@dataclass
class ApprovalResult:
    """Outcome of approve_or_reject_request."""

    request_id: int
    status: PackageRequestStatus
    beneficiaries: list[BeneficiaryPayout] = field(default_factory=list)
    rank_changes: list[RankChange] = field(default_factory=list)
    resumed: bool = False
    forfeited_amount: Decimal = Decimal("0")
    failure_reason: str | None = None

    @property
    def total_paid(self) -> Decimal:
        return sum((b.amount for b in self.beneficiaries), Decimal("0"))
