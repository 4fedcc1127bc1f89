"""Database utility functions."""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, ProgrammingError

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar('T')

_TRANSIENT_MARKERS = [
    "connection refused",
    "connection reset",
    "connection closed",
    "server closed",
    "timeout",
    "too many clients",
    "database is locked",
]

# SQLite says "no such table", PostgreSQL says 'relation "x" does not exist'
_MISSING_RELATION_MARKERS = ["no such table", "does not exist", "undefinedtable"]


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def retry_on_lock(coro_func: Callable[[], Awaitable[T]], max_retries: int = 3, base_delay: float = 0.1) -> T:
    """Retry a database operation on transient errors with exponential backoff.

    Args:
        coro_func: Async function to call (should be a callable that returns a coroutine)
        max_retries: Maximum number of retry attempts
        base_delay: Base delay in seconds (doubles with each retry)

    Returns:
        The result of the coroutine function

    Raises:
        OperationalError: If all retries fail or error is not transient
    """
    last_exception = None
    for attempt in range(max_retries):
        try:
            return await coro_func()
        except (OperationalError, InterfaceError) as e:
            error_str = str(e).lower()
            if any(msg in error_str for msg in _TRANSIENT_MARKERS):
                last_exception = e
                delay = base_delay * (2 ** attempt)
                logger.warning(f"Database transient error, retrying in {delay}s (attempt {attempt + 1}/{max_retries})")
                await asyncio.sleep(delay)
            else:
                raise
    raise last_exception


def is_missing_relation(exc: BaseException) -> bool:
    """True if ``exc`` reports a table/relation that does not exist."""
    if not isinstance(exc, (OperationalError, ProgrammingError, DBAPIError)):
        return False
    error_str = str(exc).lower()
    return any(marker in error_str for marker in _MISSING_RELATION_MARKERS)


def raise_if_missing_relation(exc: BaseException, feature: str) -> None:
    """Re-raise a missing-table error as ConfigurationError for ``feature``."""
    if is_missing_relation(exc):
        raise ConfigurationError(feature) from exc
