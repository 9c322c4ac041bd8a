"""
Base service class.

Provides session binding, a service-scoped logger and the operation
logging decorator shared by the engine's services.
"""

import functools
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession


T = TypeVar("T")


class BaseService:
    """
    Base class for services that work inside a caller-owned session.

    Such services never commit or roll back: the unit of work that
    created the session decides the outcome.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize base service.

        Args:
            session: Async database session (transaction already open)
        """
        self.session = session
        self.logger = logger.bind(service=self.__class__.__name__)


def log_operation(
    func: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T]]:
    """
    Decorator to log method entry/exit with timing.

    Works on any object exposing a ``logger`` attribute; falls back to
    the module logger otherwise.

    Usage:
        @log_operation
        async def reconcile_failed_requests(self, dry_run=False):
            ...
    """
    @functools.wraps(func)
    async def wrapper(self: Any, *args: Any, **kwargs: Any) -> T:
        log = getattr(self, "logger", logger)
        start_time = time.monotonic()

        log.debug(
            f"Starting {func.__name__}",
            extra={
                "function": func.__name__,
                "args_count": len(args),
                "kwargs_keys": list(kwargs.keys()),
            },
        )

        try:
            result = await func(self, *args, **kwargs)
        except Exception as e:
            log.warning(
                f"Failed {func.__name__}",
                extra={
                    "function": func.__name__,
                    "duration_seconds": round(time.monotonic() - start_time, 3),
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
            )
            raise

        log.debug(
            f"Completed {func.__name__}",
            extra={
                "function": func.__name__,
                "duration_seconds": round(time.monotonic() - start_time, 3),
            },
        )
        return result

    return wrapper
