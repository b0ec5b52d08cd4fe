from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Iterable, Mapping

from django.db import DatabaseError, transaction

from audit.models import AuditEntry
from core.errors import AuditWriteFailed

logger = logging.getLogger(__name__)

SYSTEM_ROLE = "system"


def _jsonable(value: Any):
    if isinstance(value, Decimal):
        return f"{value:.3f}"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def field_changes(before: Mapping[str, Any], after: Mapping[str, Any]) -> list[dict]:
    """Field-level diff of two snapshots; unchanged fields are left out."""
    changes = []
    for field in after:
        old, new = before.get(field), after[field]
        if old != new:
            changes.append({"field": field, "old": _jsonable(old), "new": _jsonable(new)})
    return changes


def _request_meta(request) -> tuple[str | None, str]:
    if request is None:
        return None, ""
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    ip_address = forwarded.split(",")[0].strip() if forwarded else request.META.get("REMOTE_ADDR")
    return ip_address or None, request.META.get("HTTP_USER_AGENT", "")[:300]


def record(
    actor,
    action: str,
    entity_type: str,
    entity_id: int,
    changes: Iterable[dict] = (),
    *,
    request=None,
) -> AuditWriteFailed | None:
    """
    Append one audit entry for a state-changing action.

    Runs in its own savepoint: if the write fails the primary mutation is kept
    and an ``AuditWriteFailed`` is returned for the caller to surface as a
    warning.
    """
    ip_address, user_agent = _request_meta(request)
    try:
        with transaction.atomic():
            AuditEntry.objects.create(
                actor=actor,
                actor_role=getattr(actor, "role", "") if actor is not None else SYSTEM_ROLE,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                changes=list(changes),
                ip_address=ip_address,
                user_agent=user_agent,
            )
    except DatabaseError as exc:
        logger.warning("Audit write failed for %s on %s:%s: %s", action, entity_type, entity_id, exc)
        return AuditWriteFailed(
            "The action succeeded but its audit entry could not be written.",
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
        )
    return None
