"""
Commission calculation.

Pure computation of commission payouts for one package purchase. No I/O:
the caller supplies the price, the package's schedule and the buyer's
ancestor chain.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from app.config.business_constants import (
    DIRECT_COMMISSION_DEPTH,
    MONEY_QUANTUM,
    OverflowPolicy,
)
from app.models.enums import EarningType
from app.utils.exceptions import CommissionScheduleError

if TYPE_CHECKING:
    from app.models.package import Package


def _to_rate(value: Any, depth: int) -> Decimal:
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise CommissionScheduleError(
            f"Invalid commission rate {value!r} at depth {depth}"
        ) from e
    if not Decimal("0") <= rate <= Decimal("1"):
        raise CommissionScheduleError(
            f"Commission rate {rate} at depth {depth} is outside [0, 1]"
        )
    return rate


@dataclass(frozen=True)
class CommissionSchedule:
    """
    Commission rates of a package.

    direct_rate applies to depth 1; indirect_rates maps depth (>= 2) to
    its rate. Depths missing from the map pay nothing.
    """

    direct_rate: Decimal
    indirect_rates: Mapping[int, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _to_rate(self.direct_rate, DIRECT_COMMISSION_DEPTH)
        for depth, rate in self.indirect_rates.items():
            if depth <= DIRECT_COMMISSION_DEPTH:
                raise CommissionScheduleError(
                    f"Indirect commission depth must be >= 2, got {depth}"
                )
            _to_rate(rate, depth)

    @classmethod
    def from_package(cls, package: "Package") -> "CommissionSchedule":
        """
        Build a schedule from a package row.

        JSON keys arrive as strings and rates as decimal strings.

        Raises:
            CommissionScheduleError: If a depth or rate is malformed
        """
        indirect: dict[int, Decimal] = {}
        for raw_depth, raw_rate in (package.indirect_commission_rates or {}).items():
            try:
                depth = int(raw_depth)
            except (TypeError, ValueError) as e:
                raise CommissionScheduleError(
                    f"Invalid commission depth {raw_depth!r}"
                ) from e
            indirect[depth] = _to_rate(raw_rate, depth)

        return cls(
            direct_rate=_to_rate(
                package.direct_commission_rate, DIRECT_COMMISSION_DEPTH
            ),
            indirect_rates=indirect,
        )

    def rate_for(self, depth: int) -> Decimal:
        if depth == DIRECT_COMMISSION_DEPTH:
            return self.direct_rate
        return self.indirect_rates.get(depth, Decimal("0"))

    @property
    def depth(self) -> int:
        """Deepest level the schedule pays."""
        return max(
            [DIRECT_COMMISSION_DEPTH, *self.indirect_rates.keys()]
        )

    @property
    def total_rate(self) -> Decimal:
        return self.direct_rate + sum(
            self.indirect_rates.values(), Decimal("0")
        )


@dataclass(frozen=True)
class Beneficiary:
    """Ancestor eligible for a payout."""

    user_id: int
    username: str


@dataclass(frozen=True)
class Payout:
    """One commission payout."""

    beneficiary: Beneficiary
    depth: int
    amount: Decimal
    type: EarningType


@dataclass(frozen=True)
class CommissionPlan:
    """Payouts for one purchase, nearest ancestor first."""

    payouts: tuple[Payout, ...]
    forfeited_amount: Decimal

    @property
    def total_paid(self) -> Decimal:
        return sum((p.amount for p in self.payouts), Decimal("0"))


def _truncate(amount: Decimal) -> Decimal:
    return amount.quantize(MONEY_QUANTUM, rounding=ROUND_DOWN)


def calculate_commissions(
    price: Decimal,
    schedule: CommissionSchedule,
    chain: Sequence[Beneficiary],
    policy: OverflowPolicy = OverflowPolicy.FORFEIT,
) -> CommissionPlan:
    """
    Compute the commission payouts of one purchase.

    The ancestor at depth 1 earns the direct rate, deeper ancestors earn
    the indirect rate of their depth. Each amount is truncated to cents;
    remainders are not redistributed and zero amounts are dropped.
    Depths the chain cannot fill are forfeited.

    Args:
        price: Package price
        schedule: Commission schedule of the package
        chain: Ancestors, nearest first
        policy: Disposition of unfilled depths

    Returns:
        CommissionPlan with payouts and the forfeited amount

    Raises:
        CommissionScheduleError: If the price is negative
    """
    if price < 0:
        raise CommissionScheduleError(f"Negative package price {price}")
    if policy != OverflowPolicy.FORFEIT:
        raise CommissionScheduleError(f"Unsupported overflow policy {policy!r}")

    payouts: list[Payout] = []
    for depth, beneficiary in enumerate(chain[: schedule.depth], start=1):
        amount = _truncate(price * schedule.rate_for(depth))
        if amount <= 0:
            continue
        payouts.append(
            Payout(
                beneficiary=beneficiary,
                depth=depth,
                amount=amount,
                type=(
                    EarningType.DIRECT_COMMISSION
                    if depth == DIRECT_COMMISSION_DEPTH
                    else EarningType.INDIRECT_COMMISSION
                ),
            )
        )

    forfeited = Decimal("0")
    for depth in range(len(chain) + 1, schedule.depth + 1):
        forfeited += _truncate(price * schedule.rate_for(depth))

    return CommissionPlan(payouts=tuple(payouts), forfeited_amount=forfeited)
