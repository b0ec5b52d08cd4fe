"""
Dispute workflow: ``open -> under_review -> resolved | escalated | closed``,
with ``escalated -> resolved | closed``.

Resolving with a refund adjusts the booking's money in the same transaction.
"""

from __future__ import annotations

import logging

from django.utils import timezone

from audit.models import AuditAction
from audit.services import recorder
from bookings.models import Booking
from bookings.services.ledger import apply_refund_adjustment
from core import idempotency
from core.db import ledger_transaction
from core.errors import IllegalTransition, InvalidAmount, ResolutionRequired
from core.events import TransitionEvent, publish
from core.money import ZERO, money_str, require_non_negative
from core.outcomes import LedgerOutcome
from disputes.models import Dispute, DisputeMessage

logger = logging.getLogger(__name__)

ENTITY = "dispute"


def _filed_by_role(booking: Booking, user) -> str:
    if user.pk == booking.traveler_id:
        return Dispute.TRAVELER
    return Dispute.CAMPAIGN_OWNER


def _sender_role(dispute: Dispute, user) -> str:
    if user.pk == dispute.booking.traveler_id:
        return Dispute.TRAVELER
    if getattr(user, "is_platform_admin", False):
        return "admin"
    return Dispute.CAMPAIGN_OWNER


def _publish(dispute: Dispute, action: str, old_status, actor) -> None:
    publish(
        TransitionEvent(
            entity_type=ENTITY,
            entity_id=dispute.pk,
            action=action,
            old_status=old_status,
            new_status=dispute.status,
            actor_id=getattr(actor, "pk", None),
        )
    )


def open_dispute(
    booking: Booking,
    filed_by,
    dispute_type: str,
    subject: str,
    description: str = "",
    disputed_amount=ZERO,
    *,
    request=None,
    idempotency_key: str | None = None,
) -> LedgerOutcome:
    key = idempotency.scoped_key(idempotency_key, AuditAction.DISPUTE_OPEN, booking.pk)
    disputed_amount = require_non_negative("disputed_amount", disputed_amount)
    with ledger_transaction():
        record = idempotency.lookup(key, AuditAction.DISPUTE_OPEN)
        if record is not None:
            return LedgerOutcome(Dispute.objects.get(pk=record.entity_id), replayed=True)
        booking.refresh_from_db(fields=["total", "paid"])
        if disputed_amount > booking.total:
            raise InvalidAmount(
                "Disputed amount cannot exceed the booking total.",
                booking_id=booking.pk,
                disputed_amount=money_str(disputed_amount),
                total=money_str(booking.total),
            )
        dispute = Dispute.objects.create(
            booking=booking,
            trip_id=booking.trip_id,
            campaign_id=booking.campaign_id,
            filed_by=filed_by,
            filed_by_role=_filed_by_role(booking, filed_by),
            dispute_type=dispute_type,
            subject=subject,
            description=description,
            disputed_amount=disputed_amount,
        )
        outcome = LedgerOutcome(dispute)
        outcome.warn(
            recorder.record(
                filed_by,
                AuditAction.DISPUTE_OPEN,
                ENTITY,
                dispute.pk,
                [
                    {"field": "status", "old": None, "new": Dispute.OPEN},
                    {"field": "disputed_amount", "old": None, "new": money_str(disputed_amount)},
                ],
                request=request,
            )
        )
        idempotency.remember(key, AuditAction.DISPUTE_OPEN, ENTITY, dispute.pk)
        _publish(dispute, AuditAction.DISPUTE_OPEN, None, filed_by)
    logger.info("Dispute %s opened on booking %s for %s", dispute.pk, booking.pk, money_str(disputed_amount))
    return outcome


def transition_dispute(
    dispute: Dispute,
    new_status: str,
    resolution: str | None = None,
    refunded_amount=ZERO,
    *,
    actor=None,
    request=None,
    idempotency_key: str | None = None,
) -> LedgerOutcome:
    """
    Move ``dispute`` to ``new_status``.

    ``resolved`` and ``closed`` need a resolution text. A refund is only
    accepted when resolving, and is capped by the disputed amount and by what
    the traveler actually paid.
    """
    key = idempotency.scoped_key(idempotency_key, AuditAction.DISPUTE_TRANSITION, dispute.pk)
    refund = require_non_negative("refunded_amount", refunded_amount)
    resolution = (resolution or "").strip()
    with ledger_transaction():
        if idempotency.lookup(key, AuditAction.DISPUTE_TRANSITION) is not None:
            dispute.refresh_from_db()
            return LedgerOutcome(dispute, replayed=True)

        old_status = dispute.status
        if new_status not in Dispute.TRANSITIONS.get(old_status, set()):
            raise IllegalTransition(
                f"A dispute cannot move from {old_status} to {new_status}.",
                dispute_id=dispute.pk,
                current=old_status,
                target=new_status,
            )
        if new_status in Dispute.TERMINAL_STATUSES and not resolution:
            raise ResolutionRequired(
                f"A resolution is required to mark the dispute {new_status}.",
                dispute_id=dispute.pk,
            )
        if refund > ZERO and new_status != Dispute.RESOLVED:
            raise InvalidAmount(
                "A refund can only be granted when resolving a dispute.",
                dispute_id=dispute.pk,
                target=new_status,
            )

        booking = Booking.objects.select_related("trip").get(pk=dispute.booking_id)
        if refund > dispute.disputed_amount:
            raise InvalidAmount(
                "Refund cannot exceed the disputed amount.",
                dispute_id=dispute.pk,
                refunded_amount=money_str(refund),
                disputed_amount=money_str(dispute.disputed_amount),
            )
        if refund > booking.paid:
            raise InvalidAmount(
                "Refund cannot exceed what was paid on the booking.",
                dispute_id=dispute.pk,
                refunded_amount=money_str(refund),
                paid=money_str(booking.paid),
            )

        outcome = LedgerOutcome(dispute)
        if refund > ZERO:
            adjustment = apply_refund_adjustment(
                booking,
                refund,
                reason=f"Dispute #{dispute.pk}: {resolution}",
                actor=actor,
                request=request,
            )
            outcome.warnings.extend(adjustment.warnings)

        before = {"status": old_status, "resolution": dispute.resolution, "refunded_amount": dispute.refunded_amount}
        dispute.status = new_status
        fields = ["status"]
        if new_status in Dispute.TERMINAL_STATUSES:
            dispute.resolution = resolution
            dispute.resolved_by = actor
            dispute.resolved_at = timezone.now()
            dispute.refunded_amount = refund
            fields += ["resolution", "resolved_by", "resolved_at", "refunded_amount"]
        dispute.commit(fields)

        after = {"status": dispute.status, "resolution": dispute.resolution, "refunded_amount": dispute.refunded_amount}
        action = AuditAction.DISPUTE_RESOLVE if new_status == Dispute.RESOLVED else AuditAction.DISPUTE_TRANSITION
        outcome.warn(
            recorder.record(actor, action, ENTITY, dispute.pk, recorder.field_changes(before, after), request=request)
        )
        idempotency.remember(key, AuditAction.DISPUTE_TRANSITION, ENTITY, dispute.pk)
        _publish(dispute, action, old_status, actor)
    logger.info("Dispute %s: %s -> %s (refund %s)", dispute.pk, old_status, new_status, money_str(refund))
    return outcome


def post_message(dispute: Dispute, sender, content: str, *, request=None) -> LedgerOutcome:
    content = content.strip()
    if dispute.is_terminal:
        raise IllegalTransition(
            f"Dispute is {dispute.status}; the thread is closed.",
            dispute_id=dispute.pk,
            current=dispute.status,
        )
    with ledger_transaction():
        message = DisputeMessage.objects.create(
            dispute=dispute,
            sender=sender,
            sender_role=_sender_role(dispute, sender),
            content=content,
        )
        outcome = LedgerOutcome(message)
        outcome.warn(
            recorder.record(
                sender,
                AuditAction.DISPUTE_MESSAGE,
                ENTITY,
                dispute.pk,
                [{"field": "messages", "old": None, "new": message.pk}],
                request=request,
            )
        )
    return outcome
