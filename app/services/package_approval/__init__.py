"""
Package approval services package.
"""

from app.services.package_approval.approval_service import (
    PackageApprovalService,
)
from app.services.package_approval.results import (
    ApprovalResult,
    BeneficiaryPayout,
    RankChange,
)


__all__ = [
    "ApprovalResult",
    "BeneficiaryPayout",
    "PackageApprovalService",
    "RankChange",
]
