"""
Exception handling utilities.

Defines the package approval error taxonomy and the categories callers
use to decide whether an operation may be retried.
"""

from sqlalchemy.exc import OperationalError


class PackageApprovalError(Exception):
    """Base class for errors raised by the approval engine."""

    def __init__(self, message: str, request_id: int | None = None) -> None:
        super().__init__(message)
        self.request_id = request_id


class ValidationError(PackageApprovalError):
    """Request data failed validation (missing user, inactive package...)."""
    pass


class RequestNotFoundError(PackageApprovalError):
    """No package request with the given ID."""
    pass


class AlreadyProcessedError(PackageApprovalError):
    """Request has already left the pending state."""

    def __init__(self, request_id: int, status: str) -> None:
        super().__init__(
            f"Package request {request_id} already processed "
            f"(status={status})",
            request_id=request_id,
        )
        self.status = status


class ConcurrencyTimeoutError(PackageApprovalError):
    """Row lock or execution budget exhausted; the request stays pending."""
    pass


class StorageFailureError(PackageApprovalError):
    """Unexpected storage error; the unit of work was rolled back."""
    pass


class LedgerConflictError(PackageApprovalError):
    """Rejection refused because ledger entries already exist."""
    pass


class ApprovalConfigurationError(PackageApprovalError):
    """Rank table or commission schedule is unusable for this request."""
    pass


class RankConfigurationError(Exception):
    """Rank table is empty or has duplicate or negative thresholds."""
    pass


class CommissionScheduleError(Exception):
    """Commission schedule or price is out of range."""
    pass


# Exception categories based on handling strategy

# Safe to retry - the unit of work rolled back and the request is
# still pending
RETRY_SAFE = (
    ConcurrencyTimeoutError,
    OperationalError,
)

# Must raise - data or configuration problems retrying cannot fix
MUST_RAISE = (
    ValidationError,
    RequestNotFoundError,
    AlreadyProcessedError,
    LedgerConflictError,
    ApprovalConfigurationError,
    RankConfigurationError,
    CommissionScheduleError,
)


def is_retry_safe(exc: Exception) -> bool:
    """
    Check if the failed operation can be attempted again.

    Args:
        exc: Exception to check

    Returns:
        True if exception leaves state unchanged and is transient
    """
    return isinstance(exc, RETRY_SAFE)


def must_raise(exc: Exception) -> bool:
    """
    Check if exception must be surfaced to the caller as-is.

    Args:
        exc: Exception to check

    Returns:
        True if exception must be raised
    """
    return isinstance(exc, MUST_RAISE)
