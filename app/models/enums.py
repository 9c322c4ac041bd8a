"""
Model enumerations.

String values are what is persisted in status/type columns.
"""

from enum import StrEnum


class PackageRequestStatus(StrEnum):
    """Package request lifecycle: pending -> approved | failed (both terminal)."""

    PENDING = "pending"
    APPROVED = "approved"
    FAILED = "failed"


class EarningType(StrEnum):
    """Ledger entry types."""

    DIRECT_COMMISSION = "direct_commission"
    INDIRECT_COMMISSION = "indirect_commission"


class ApprovalDecision(StrEnum):
    """Administrator decision on a pending package request."""

    APPROVE = "approve"
    REJECT = "reject"
