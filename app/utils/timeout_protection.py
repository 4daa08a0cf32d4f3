# app/utils/timeout_protection.py
"""
Timeout protection for store round-trips.

A unit of work that hangs on a lock or a dead connection must not hold the
request forever; it is cancelled (rolling its transaction back) and surfaced
as a retryable StoreUnavailable.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Optional

from sqlalchemy.exc import InterfaceError, OperationalError

from app.core.errors import StoreUnavailable

logger = logging.getLogger(__name__)


async def with_timeout(coro: Awaitable[Any], timeout_seconds: float, operation: str = "store") -> Any:
    """
    Await ``coro`` for at most ``timeout_seconds``.

    Args:
        coro: The coroutine to execute
        timeout_seconds: Maximum time to wait
        operation: Name used in logs and in the raised error

    Raises:
        StoreUnavailable: on timeout or when the driver reports the database
            as unreachable or locked.
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning(f"{operation} timed out after {timeout_seconds}s")
        raise StoreUnavailable(f"{operation} timed out after {timeout_seconds}s", operation=operation)
    except (OperationalError, InterfaceError) as e:
        logger.error(f"{operation} failed at the driver: {e}")
        raise StoreUnavailable(f"{operation} could not reach the store", operation=operation) from e


class OperationTimer:
    """
    Context manager that logs how long a unit of work took.

    Usage:
        with OperationTimer("commit_booking") as timer:
            ...
    """

    def __init__(self, operation_name: str, warn_after: float = 1.0):
        self.operation_name = operation_name
        self.warn_after = warn_after
        self.start_time: Optional[float] = None

    def __enter__(self):
        self.start_time = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = self.elapsed()
        if duration > self.warn_after:
            logger.warning(f"{self.operation_name} took {duration:.2f}s (>{self.warn_after}s)")
        else:
            logger.debug(f"{self.operation_name} completed in {duration:.3f}s")

    def elapsed(self) -> float:
        if self.start_time is None:
            return 0.0
        return time.monotonic() - self.start_time
