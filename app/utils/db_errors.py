"""
Database error classification.

Tells transient lock waits apart from execution budget overruns and other
storage errors.
"""

from sqlalchemy.exc import DBAPIError

# PostgreSQL SQLSTATE: lock_not_available
LOCK_TIMEOUT_SQLSTATES = frozenset({"55P03"})

# PostgreSQL SQLSTATE: query_canceled (raised by statement_timeout)
STATEMENT_TIMEOUT_SQLSTATES = frozenset({"57014"})

LOCK_TIMEOUT_MESSAGES = (
    "could not obtain lock",
    "lock_not_available",
    "lock timeout",
    "database is locked",
)

STATEMENT_TIMEOUT_MESSAGES = (
    "canceling statement due to statement timeout",
)


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    if orig is None:
        return None
    # asyncpg exposes sqlstate, psycopg exposes pgcode
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _matches(
    exc: BaseException, sqlstates: frozenset[str], messages: tuple[str, ...]
) -> bool:
    if not isinstance(exc, DBAPIError):
        return False

    if _sqlstate(exc) in sqlstates:
        return True

    error_msg = str(exc).lower()
    return any(marker in error_msg for marker in messages)


def is_statement_timeout(exc: BaseException) -> bool:
    """
    Check whether a database error is a statement timeout.

    A statement timeout means the execution budget of the transaction was
    spent. Retrying would spend it again, so callers must not retry.

    Args:
        exc: Exception raised by SQLAlchemy

    Returns:
        True if the statement was cancelled by statement_timeout
    """
    return _matches(
        exc, STATEMENT_TIMEOUT_SQLSTATES, STATEMENT_TIMEOUT_MESSAGES
    )


def is_lock_timeout(exc: BaseException) -> bool:
    """
    Check whether a database error is a lock wait timeout.

    Args:
        exc: Exception raised by SQLAlchemy

    Returns:
        True if the error is transient and the transaction can be retried
    """
    if is_statement_timeout(exc):
        return False
    return _matches(exc, LOCK_TIMEOUT_SQLSTATES, LOCK_TIMEOUT_MESSAGES)
