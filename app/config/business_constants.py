"""
Business logic constants for the package approval engine.

Central location for business rules and constants used across the application.
This module has no application imports so settings and services can both use it.
"""

from decimal import Decimal
from enum import StrEnum


# Monetary quantum: all payouts are truncated to cents
MONEY_QUANTUM = Decimal("0.01")

# Granted package validity (one year)
DEFAULT_PACKAGE_VALIDITY_DAYS = 365

# Depth of the direct referrer in an ancestor chain
DIRECT_COMMISSION_DEPTH = 1


class OverflowPolicy(StrEnum):
    """
    Disposition of schedule depths the ancestor chain cannot fill.

    Only forfeiture is implemented: unpaid depths are neither rolled up
    to the root nor reserved.
    """

    FORFEIT = "forfeit"


# Default rank table seeded by scripts/init_database.py
# (title, required points, details)
DEFAULT_RANKS: list[tuple[str, int, str]] = [
    ("Consultant", 0, "Entry rank"),
    ("Manager", 1000, "Unlocked at 1,000 points"),
    ("Sapphire Manager", 2000, "Unlocked at 2,000 points"),
    ("Diamond", 8000, "Unlocked at 8,000 points"),
    ("Sapphire Diamond", 24000, "Unlocked at 24,000 points"),
]
