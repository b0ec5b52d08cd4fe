"""
Outbound transition events.

Ledger commands publish one ``TransitionEvent`` per successful state change.
Delivery happens after the surrounding transaction commits, through the
``ledger_transition`` signal. Receivers (notification dispatch, external audit
sinks) are collaborators: a failing receiver is logged with the event that
triggered it and never undoes the committed mutation.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime

from django.db import transaction
from django.dispatch import Signal
from django.utils import timezone

logger = logging.getLogger(__name__)

ledger_transition = Signal()


@dataclass(frozen=True)
class TransitionEvent:
    entity_type: str
    entity_id: int
    action: str
    old_status: str | None
    new_status: str | None
    actor_id: int | None = None
    occurred_at: datetime = field(default_factory=timezone.now)

    def as_dict(self) -> dict:
        data = asdict(self)
        data["occurred_at"] = self.occurred_at.isoformat()
        return data


def publish(event: TransitionEvent) -> None:
    transaction.on_commit(lambda: dispatch(event))


def dispatch(event: TransitionEvent) -> list:
    responses = ledger_transition.send_robust(sender=event.entity_type, event=event)
    for receiver, response in responses:
        if isinstance(response, Exception):
            logger.error(
                "Receiver %s failed for %s %s (%s): %s",
                getattr(receiver, "__qualname__", receiver),
                event.entity_type,
                event.entity_id,
                event.action,
                response,
                exc_info=response,
            )
    return responses
