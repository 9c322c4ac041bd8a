"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from app.models.base import Base
from app.models.earning import Earning
from app.models.enums import (
    ApprovalDecision,
    EarningType,
    PackageRequestStatus,
)
from app.models.package import Package
from app.models.package_request import PackageRequest
from app.models.rank import Rank
from app.models.user import User

__all__ = [
    "Base",
    "ApprovalDecision",
    "Earning",
    "EarningType",
    "Package",
    "PackageRequest",
    "PackageRequestStatus",
    "Rank",
    "User",
]
