"""
Commission services package.
"""

from app.services.commission.commission_calculator import (
    Beneficiary,
    CommissionPlan,
    CommissionSchedule,
    Payout,
    calculate_commissions,
)


__all__ = [
    "Beneficiary",
    "CommissionPlan",
    "CommissionSchedule",
    "Payout",
    "calculate_commissions",
]
