from __future__ import annotations

from contextlib import contextmanager

from django.conf import settings
from django.db import OperationalError, connection, transaction

from .errors import DependencyUnavailable


@contextmanager
def ledger_transaction(timeout_ms: int | None = None):
    """
    Atomic block for one ledger command.

    On PostgreSQL the block runs under a local ``statement_timeout`` so that no
    command waits indefinitely on a lock or a slow database. A timeout or lost
    connection surfaces as ``DependencyUnavailable``, which callers may retry
    with the same idempotency key.
    """
    if timeout_ms is None:
        timeout_ms = settings.LEDGER_DB_TIMEOUT_MS
    try:
        with transaction.atomic():
            if timeout_ms and connection.vendor == "postgresql":
                with connection.cursor() as cursor:
                    cursor.execute(
                        "SELECT set_config('statement_timeout', %s, true)",
                        [str(int(timeout_ms))],
                    )
            yield
    except OperationalError as exc:
        raise DependencyUnavailable(
            "The ledger database is unavailable or timed out.",
            timeout_ms=timeout_ms,
        ) from exc
