"""
Conflict Retry
==============

Whole-operation retry for lifecycle writes that lost a compare-and-swap.

The engine never retries on its own: a ConcurrencyConflict rolls back the
transaction and propagates. Callers (the HTTP routes) wrap each operation
in ``retry_on_conflict`` so the next attempt re-reads the shipment from
scratch. After the last attempt the conflict is re-raised and the error
middleware reports it as a retryable 503.
"""

import logging
import random
import time
from typing import Callable, Optional, TypeVar

from copallet.config import settings
from copallet.core.errors import ConcurrencyConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_on_conflict(
    fn: Callable[[], T],
    attempts: Optional[int] = None,
    backoff_min_ms: Optional[int] = None,
    backoff_max_ms: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Execute *fn*, retrying on ConcurrencyConflict with jittered backoff."""
    attempts = max(1, attempts if attempts is not None else settings.conflict_retry_attempts)
    low = backoff_min_ms if backoff_min_ms is not None else settings.conflict_backoff_min_ms
    high = backoff_max_ms if backoff_max_ms is not None else settings.conflict_backoff_max_ms

    last_exc: Optional[ConcurrencyConflict] = None
    for attempt in range(attempts):
        try:
            return fn()
        except ConcurrencyConflict as exc:
            last_exc = exc
            if attempt + 1 >= attempts:
                break
            delay = random.randint(low, max(low, high)) / 1000
            logger.warning(
                "Shipment write conflict, retry %d/%d in %.3fs",
                attempt + 1,
                attempts - 1,
                delay,
                extra={"shipment_id": exc.context.get("shipment_id")},
            )
            sleep(delay)

    logger.error("Shipment write conflict persisted after %d attempts", attempts)
    raise last_exc  # type: ignore[misc]
