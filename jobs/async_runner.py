"""
Async runner for dramatiq tasks.

Dramatiq actors are synchronous; the engine is async. Each worker thread
keeps one event loop and runs coroutines on it.
"""

import asyncio
import threading
from collections.abc import Coroutine
from typing import Any, TypeVar

from loguru import logger

T = TypeVar("T")

# Thread-local storage for event loops
_thread_local = threading.local()


def get_event_loop() -> asyncio.AbstractEventLoop:
    """
    Get or create the event loop of the current thread.

    Reusing one loop per thread keeps asyncpg connections bound to the
    loop that created them.
    """
    loop = getattr(_thread_local, "loop", None)
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.loop = loop
        logger.debug(
            f"Created new event loop for thread "
            f"{threading.current_thread().name}"
        )
    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run an async coroutine on the thread's event loop.

    Args:
        coro: Async coroutine to run

    Returns:
        Result of the coroutine
    """
    return get_event_loop().run_until_complete(coro)
