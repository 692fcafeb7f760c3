"""Bounded retry with exponential backoff for optimistic-concurrency conflicts.

Usage:
    class ReservationGateway:
        def __init__(self, db: Session):
            self.db = db

        @retry_on_conflict()
        def reserve(self, ...):
            with self.store.transaction():
                ...

Each attempt must be a complete unit of work: the decorated method re-reads
everything it needs, so a retry sees the balance committed by the winner.
"""

import functools
import logging
import time
from typing import Callable, Optional, TypeVar

from stockledger.core.config import settings
from stockledger.core.exceptions import ConcurrentModificationError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number ``attempt`` (1-based)."""
    return min(max_delay, base_delay * (2 ** (attempt - 1)))


def retry_on_conflict(
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
) -> Callable[[F], F]:
    """Retry a service method on ConcurrentModificationError.

    Defaults come from settings at call time. The instance's ``db`` session
    is rolled back before every retry. Any other exception propagates
    immediately.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            max_attempts = attempts or settings.conflict_retry_attempts
            base = settings.conflict_retry_base_delay if base_delay is None else base_delay
            ceiling = settings.conflict_retry_max_delay if max_delay is None else max_delay

            attempt = 1
            while True:
                try:
                    return func(self, *args, **kwargs)
                except ConcurrentModificationError:
                    self.db.rollback()
                    if attempt >= max_attempts:
                        logger.warning(
                            f"{func.__qualname__} gave up after {attempt} conflicting attempts"
                        )
                        raise
                    delay = backoff_delay(attempt, base, ceiling)
                    logger.info(
                        f"{func.__qualname__} hit a version conflict, "
                        f"retry {attempt}/{max_attempts - 1} in {delay:.3f}s"
                    )
                    time.sleep(delay)
                    attempt += 1

        return wrapper  # type: ignore[return-value]

    return decorator
