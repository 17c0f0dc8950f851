"""Retry helpers shared by store access and alert delivery."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import OperationalError, InterfaceError

logger = logging.getLogger(__name__)

T = TypeVar('T')

TRANSIENT_DB_MESSAGES = (
    "connection refused",
    "connection reset",
    "connection closed",
    "server closed",
    "database is locked",
    "timeout",
    "too many clients",
)


def linear_backoff(step: float) -> Callable[[int], float]:
    """Delay grows by ``step`` seconds per attempt: step, 2*step, ..."""
    return lambda attempt: step * attempt


def exponential_backoff(base: float) -> Callable[[int], float]:
    """Delay doubles per attempt: base, 2*base, 4*base, ..."""
    return lambda attempt: base * (2 ** (attempt - 1))


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry a fallible async operation.

    Args:
        max_attempts: Total attempts including the first one
        backoff: Maps the 1-based number of the failed attempt to a delay in seconds
        retry_on: Decides whether an exception is transient
    """
    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default=exponential_backoff(0.1))
    retry_on: Callable[[BaseException], bool] = field(default=lambda exc: True)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str = "operation",
) -> T:
    """Call ``func`` until it succeeds, the error is not transient, or attempts run out.

    The last exception is re-raised when every attempt failed.
    """
    attempt = 1
    while True:
        try:
            return await func()
        except Exception as e:
            if attempt >= policy.max_attempts or not policy.retry_on(e):
                raise
            delay = policy.backoff(attempt)
            logger.warning(
                f"{description} failed ({e}), retrying in {delay}s "
                f"(attempt {attempt}/{policy.max_attempts})"
            )
            await asyncio.sleep(delay)
            attempt += 1


def is_transient_db_error(exc: BaseException) -> bool:
    """Transient connection/lock errors from SQLite or PostgreSQL."""
    if not isinstance(exc, (OperationalError, InterfaceError)):
        return False
    error_str = str(exc).lower()
    return any(msg in error_str for msg in TRANSIENT_DB_MESSAGES)
