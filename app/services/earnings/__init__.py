"""
Earnings services package.
"""

from app.services.earnings.ledger_writer import (
    EarningsLedgerWriter,
    describe_payout,
)


__all__ = [
    "EarningsLedgerWriter",
    "describe_payout",
]
