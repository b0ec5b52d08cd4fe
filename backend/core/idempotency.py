from __future__ import annotations

from django.db import IntegrityError, transaction

from .errors import ConcurrentModification, IdempotencyKeyReused
from .models import IdempotencyRecord


def scoped_key(key: str | None, *parts) -> str | None:
    """Namespace a client-supplied key, e.g. ``scoped_key(k, "booking", 12)``."""
    if not key:
        return None
    return ":".join([*(str(part) for part in parts), key])


def lookup(key: str | None, operation: str) -> IdempotencyRecord | None:
    if not key:
        return None
    record = IdempotencyRecord.objects.filter(key=key).first()
    if record is not None and record.operation != operation:
        raise IdempotencyKeyReused(
            "Idempotency key was already used for another operation.",
            key=key,
            operation=record.operation,
        )
    return record


def remember(key: str | None, operation: str, entity_type: str, entity_id: int) -> None:
    if not key:
        return
    try:
        with transaction.atomic():
            IdempotencyRecord.objects.create(
                key=key,
                operation=operation,
                entity_type=entity_type,
                entity_id=entity_id,
            )
    except IntegrityError as exc:
        # Another request with the same key committed first; retrying replays it.
        raise ConcurrentModification(
            "A request with this idempotency key is already being processed.",
            key=key,
        ) from exc
