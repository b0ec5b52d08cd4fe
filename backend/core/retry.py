from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

from django.conf import settings

from .errors import ConcurrentModification

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_on_conflict(
    operation: Callable[[], T],
    *,
    refresh: Optional[Callable[[], None]] = None,
    attempts: Optional[int] = None,
) -> T:
    """
    Run ``operation``, re-running it after a ``ConcurrentModification``.

    ``refresh`` reloads the caller's state between attempts. The last conflict
    is re-raised once ``attempts`` is exhausted.
    """
    attempts = attempts or settings.LEDGER_CONFLICT_RETRY_ATTEMPTS
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except ConcurrentModification as exc:
            if attempt == attempts:
                logger.warning("Giving up after %s conflicting attempts: %s", attempts, exc)
                raise
            logger.info("Write conflict on attempt %s/%s, retrying: %s", attempt, attempts, exc)
            if refresh is not None:
                refresh()
    raise AssertionError("unreachable")
