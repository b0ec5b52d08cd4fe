"""
Booking commands.

Each command runs in one ``ledger_transaction``, writes the booking through
``Booking.commit`` (optimistic version check), appends audit entries and
publishes a transition event after commit when the status changed. Commands
that take an ``idempotency_key`` replay the stored result when the same key is
seen again instead of applying the change twice.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from django.utils import timezone

from audit.models import AuditAction
from audit.services import recorder
from bookings import lifecycle
from bookings.models import Booking
from bookings.services import schedule
from core import idempotency
from core.db import ledger_transaction
from core.errors import IllegalTransition, InvalidAmount, InvalidQuantity, PaymentIncomplete, RefundRequired, TripNotBookable
from core.events import TransitionEvent, publish
from core.money import ZERO, BookingAmounts, money_str, to_money
from core.outcomes import LedgerOutcome
from payments.models import Payment
from trips.models import Trip
from trips.services import capacity

logger = logging.getLogger(__name__)

ENTITY = "booking"

TRACKED_FIELDS = (
    "status",
    "operational_status",
    "confirmed_at",
    "capacity_released",
    "cancellation_reason",
    *Booking.MONEY_FIELDS,
)


def _snapshot(booking: Booking) -> dict:
    return {field: getattr(booking, field) for field in TRACKED_FIELDS}


def _replay(key: str | None, operation: str, booking: Booking) -> LedgerOutcome | None:
    if idempotency.lookup(key, operation) is None:
        return None
    booking.refresh_from_db()
    logger.info("Replaying %s for booking %s (key %s)", operation, booking.pk, key)
    return LedgerOutcome(booking, replayed=True)


def _finish(
    outcome: LedgerOutcome,
    booking: Booking,
    *,
    action: str,
    before: dict,
    old_status: str | None,
    actor=None,
    request=None,
) -> LedgerOutcome:
    changes = recorder.field_changes(before, _snapshot(booking))
    outcome.warn(recorder.record(actor, action, ENTITY, booking.pk, changes, request=request))
    if old_status == booking.status:
        logger.info("%s on booking %s left it %s", action, booking.pk, booking.status)
        return outcome
    publish(
        TransitionEvent(
            entity_type=ENTITY,
            entity_id=booking.pk,
            action=action,
            old_status=old_status,
            new_status=booking.status,
            actor_id=getattr(actor, "pk", None),
        )
    )
    logger.info("%s on booking %s: %s -> %s", action, booking.pk, old_status, booking.status)
    return outcome


def _ensure_open(booking: Booking) -> None:
    if booking.is_terminal:
        raise IllegalTransition(
            f"Booking is {booking.status}; no further changes are allowed.",
            booking_id=booking.pk,
            current=booking.status,
        )


def _release_capacity(booking: Booking, outcome: LedgerOutcome, *, actor=None, request=None) -> None:
    """Give the booking's seats back to its trip, at most once per booking."""
    if booking.capacity_released:
        return
    trip = booking.trip
    before = trip.booked_count
    capacity.release(trip, booking.passenger_count)
    booking.capacity_released = True
    outcome.warn(
        recorder.record(
            actor,
            AuditAction.TRIP_RELEASE,
            "trip",
            trip.pk,
            [{"field": "booked_count", "old": before, "new": trip.booked_count}],
            request=request,
        )
    )


def _apply_refund(booking: Booking, amount: Decimal, *, actor=None, reason: str = "", method: str = Payment.KNET) -> None:
    """Move ``amount`` back to the traveler and keep the schedule summing to the new total."""
    amounts = booking.amounts.apply_refund(amount)
    booking.set_amounts(amounts)
    schedule.rebalance_after_refund(booking, amount)
    schedule.ensure_schedule_matches(booking)
    if amount > ZERO:
        Payment.objects.create(
            booking=booking,
            campaign_id=booking.campaign_id,
            amount=amount,
            direction=Payment.OUTBOUND,
            method=method,
            status=Payment.COMPLETED,
            notes=reason,
            recorded_by=actor,
        )


def create_booking(
    trip: Trip,
    traveler,
    passenger_count: int,
    *,
    unit_price=None,
    discount=ZERO,
    special_requests: str = "",
    actor=None,
    request=None,
    idempotency_key: str | None = None,
) -> LedgerOutcome:
    actor = actor or traveler
    key = idempotency.scoped_key(idempotency_key, "booking.create", traveler.pk)
    try:
        passenger_count = int(passenger_count)
    except (TypeError, ValueError):
        raise InvalidQuantity("Passenger count must be a whole number.", passenger_count=passenger_count)
    if passenger_count < 1:
        raise InvalidQuantity("A booking needs at least one passenger.", passenger_count=passenger_count)

    with ledger_transaction():
        record = idempotency.lookup(key, AuditAction.BOOKING_CREATE)
        if record is not None:
            return LedgerOutcome(Booking.objects.get(pk=record.entity_id), replayed=True)

        now = timezone.now()
        if not trip.is_bookable(now):
            raise TripNotBookable(
                "This trip is not open for registration.",
                trip_id=trip.pk,
                trip_status=trip.status,
            )
        price = trip.base_price if unit_price is None else unit_price
        amounts = BookingAmounts.quote(price, passenger_count, discount)

        seats_before = trip.booked_count
        capacity.reserve(trip, passenger_count)

        booking = Booking(
            traveler=traveler,
            campaign_id=trip.campaign_id,
            trip=trip,
            passenger_count=passenger_count,
            unit_price=to_money(price),
            special_requests=special_requests,
            status=Booking.PENDING_PAYMENT,
            created_at=now,
        )
        booking.set_amounts(amounts)
        booking.save()

        outcome = LedgerOutcome(booking)
        outcome.warn(
            recorder.record(
                actor,
                AuditAction.TRIP_RESERVE,
                "trip",
                trip.pk,
                [{"field": "booked_count", "old": seats_before, "new": trip.booked_count}],
                request=request,
            )
        )
        idempotency.remember(key, AuditAction.BOOKING_CREATE, ENTITY, booking.pk)
        return _finish(
            outcome,
            booking,
            action=AuditAction.BOOKING_CREATE,
            before={},
            old_status=None,
            actor=actor,
            request=request,
        )


def record_payment(
    booking: Booking,
    amount,
    *,
    method: str = Payment.KNET,
    gateway_reference: str = "",
    installment=None,
    actor=None,
    request=None,
    idempotency_key: str | None = None,
) -> LedgerOutcome:
    """
    Apply an inbound payment.

    ``amount`` must be positive and no more than ``remaining``; the status
    follows from the new paid figure (``partially_paid`` or ``fully_paid``).
    On a scheduled booking a payment not tied to ``installment`` settles the
    next pending installments and must cover them exactly.
    """
    key = idempotency.scoped_key(idempotency_key, AuditAction.BOOKING_PAYMENT, booking.pk)
    with ledger_transaction():
        replay = _replay(key, AuditAction.BOOKING_PAYMENT, booking)
        if replay is not None:
            return replay
        _ensure_open(booking)

        before, old_status = _snapshot(booking), booking.status
        amount = to_money(amount)
        amounts = booking.amounts.apply_payment(amount)
        covered = [] if installment is not None else schedule.pending_covering(booking, amount)
        booking.set_amounts(amounts)
        booking.recompute_status()
        booking.commit((*Booking.MONEY_FIELDS, "status"))

        if installment is None and len(covered) == 1:
            installment = covered[0]
        payment = Payment.objects.create(
            booking=booking,
            campaign_id=booking.campaign_id,
            installment=installment,
            amount=amount,
            direction=Payment.INBOUND,
            method=method,
            status=Payment.COMPLETED,
            gateway_reference=gateway_reference,
            recorded_by=actor,
        )
        outcome = LedgerOutcome(booking)
        schedule.settle_installments(booking, covered, outcome, actor=actor, request=request)
        idempotency.remember(key, AuditAction.BOOKING_PAYMENT, "payment", payment.pk)
        return _finish(
            outcome,
            booking,
            action=AuditAction.BOOKING_PAYMENT,
            before=before,
            old_status=old_status,
            actor=actor,
            request=request,
        )


def _confirm(booking: Booking) -> None:
    booking.confirmed_at = timezone.now()
    booking.recompute_status()
    booking.commit(("confirmed_at", "status"))


def confirm_booking(booking: Booking, *, actor=None, request=None, idempotency_key: str | None = None) -> LedgerOutcome:
    """Campaign approval; independent of payment. Confirming twice changes nothing."""
    key = idempotency.scoped_key(idempotency_key, AuditAction.BOOKING_CONFIRM, booking.pk)
    with ledger_transaction():
        replay = _replay(key, AuditAction.BOOKING_CONFIRM, booking)
        if replay is not None:
            return replay
        _ensure_open(booking)
        if booking.is_confirmed:
            return LedgerOutcome(booking)

        before, old_status = _snapshot(booking), booking.status
        _confirm(booking)
        idempotency.remember(key, AuditAction.BOOKING_CONFIRM, ENTITY, booking.pk)
        return _finish(
            LedgerOutcome(booking),
            booking,
            action=AuditAction.BOOKING_CONFIRM,
            before=before,
            old_status=old_status,
            actor=actor,
            request=request,
        )


def advance_booking(
    booking: Booking,
    target: str,
    *,
    override: bool = False,
    actor=None,
    request=None,
    idempotency_key: str | None = None,
) -> LedgerOutcome:
    key = idempotency.scoped_key(idempotency_key, AuditAction.BOOKING_ADVANCE, booking.pk)
    with ledger_transaction():
        replay = _replay(key, AuditAction.BOOKING_ADVANCE, booking)
        if replay is not None:
            return replay

        overridden = lifecycle.check_advance(
            booking.status,
            target,
            fully_paid=booking.amounts.is_fully_paid,
            confirmed=booking.is_confirmed,
            override=override,
        )
        if overridden and not booking.campaign.allows_status_override:
            raise PaymentIncomplete(
                "This campaign does not allow advancing unpaid bookings.",
                booking_id=booking.pk,
                target=target,
            )

        before, old_status = _snapshot(booking), booking.status
        if target == lifecycle.CONFIRMED:
            _confirm(booking)
            action = AuditAction.BOOKING_CONFIRM
        else:
            booking.operational_status = target
            booking.recompute_status()
            booking.commit(("operational_status", "status"))
            action = AuditAction.BOOKING_ADVANCE_OVERRIDE if overridden else AuditAction.BOOKING_ADVANCE
            if overridden:
                logger.warning(
                    "Booking %s advanced to %s with payment override by %s",
                    booking.pk,
                    target,
                    getattr(actor, "pk", None),
                )

        idempotency.remember(key, AuditAction.BOOKING_ADVANCE, ENTITY, booking.pk)
        return _finish(
            LedgerOutcome(booking),
            booking,
            action=action,
            before=before,
            old_status=old_status,
            actor=actor,
            request=request,
        )


def cancel_booking(
    booking: Booking,
    reason: str = "",
    *,
    refund_amount=None,
    refund_method: str = Payment.KNET,
    actor=None,
    request=None,
    idempotency_key: str | None = None,
) -> LedgerOutcome:
    """
    Cancel the booking and give its seats back.

    A booking with money on it can only be cancelled together with a refund of
    exactly what was paid. Cancelling an already cancelled booking is a no-op.
    """
    key = idempotency.scoped_key(idempotency_key, AuditAction.BOOKING_CANCEL, booking.pk)
    with ledger_transaction():
        replay = _replay(key, AuditAction.BOOKING_CANCEL, booking)
        if replay is not None:
            return replay
        if booking.status == Booking.CANCELLED:
            return LedgerOutcome(booking)
        if not lifecycle.can_terminate(booking.status):
            raise IllegalTransition(
                f"A {booking.status} booking cannot be cancelled.",
                booking_id=booking.pk,
                current=booking.status,
            )

        paid = booking.paid
        if paid > ZERO and refund_amount is None:
            raise RefundRequired(
                "This booking has payments; cancel it with a refund of the amount paid.",
                booking_id=booking.pk,
                paid=money_str(paid),
            )
        refund = to_money(refund_amount) if refund_amount is not None else ZERO
        if refund != paid:
            raise InvalidAmount(
                "The refund must equal the amount paid.",
                booking_id=booking.pk,
                paid=money_str(paid),
                refund=money_str(refund),
            )

        before, old_status = _snapshot(booking), booking.status
        outcome = LedgerOutcome(booking)
        _apply_refund(booking, refund, actor=actor, reason=reason, method=refund_method)
        booking.status = Booking.CANCELLED
        booking.cancellation_reason = reason
        booking.cancelled_at = timezone.now()
        _release_capacity(booking, outcome, actor=actor, request=request)
        booking.commit((*Booking.MONEY_FIELDS, "status", "cancellation_reason", "cancelled_at", "capacity_released"))

        idempotency.remember(key, AuditAction.BOOKING_CANCEL, ENTITY, booking.pk)
        return _finish(
            outcome,
            booking,
            action=AuditAction.BOOKING_CANCEL,
            before=before,
            old_status=old_status,
            actor=actor,
            request=request,
        )


def refund_booking(
    booking: Booking,
    amount,
    reason: str = "",
    *,
    refund_method: str = Payment.KNET,
    actor=None,
    request=None,
    idempotency_key: str | None = None,
) -> LedgerOutcome:
    """Close the booking as ``refunded``, returning ``amount`` (at most what was paid)."""
    key = idempotency.scoped_key(idempotency_key, AuditAction.BOOKING_REFUND, booking.pk)
    with ledger_transaction():
        replay = _replay(key, AuditAction.BOOKING_REFUND, booking)
        if replay is not None:
            return replay
        if not lifecycle.can_terminate(booking.status):
            raise IllegalTransition(
                f"A {booking.status} booking cannot be refunded.",
                booking_id=booking.pk,
                current=booking.status,
            )

        before, old_status = _snapshot(booking), booking.status
        outcome = LedgerOutcome(booking)
        _apply_refund(booking, to_money(amount), actor=actor, reason=reason, method=refund_method)
        booking.status = Booking.REFUNDED
        booking.cancellation_reason = reason
        booking.refunded_at = timezone.now()
        _release_capacity(booking, outcome, actor=actor, request=request)
        booking.commit((*Booking.MONEY_FIELDS, "status", "cancellation_reason", "refunded_at", "capacity_released"))

        idempotency.remember(key, AuditAction.BOOKING_REFUND, ENTITY, booking.pk)
        return _finish(
            outcome,
            booking,
            action=AuditAction.BOOKING_REFUND,
            before=before,
            old_status=old_status,
            actor=actor,
            request=request,
        )


def apply_refund_adjustment(booking: Booking, amount, *, reason: str = "", actor=None, request=None) -> LedgerOutcome:
    """
    Return part of a booking's money without ending it (dispute settlements).

    ``total`` and ``paid`` both drop by ``amount`` and the payment schedule is
    re-validated against the new total.
    """
    with ledger_transaction():
        amount = to_money(amount)
        before, old_status = _snapshot(booking), booking.status
        _apply_refund(booking, amount, actor=actor, reason=reason)
        booking.recompute_status()
        booking.commit((*Booking.MONEY_FIELDS, "status"))
        return _finish(
            LedgerOutcome(booking),
            booking,
            action=AuditAction.BOOKING_REFUND_ADJUST,
            before=before,
            old_status=old_status,
            actor=actor,
            request=request,
        )
