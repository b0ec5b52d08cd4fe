"""
Installment schedules.

The amounts of a booking's installments always add up to its current
``total`` and the paid ones add up to its ``paid``. ``overdue`` is never
stored: it is worked out when the schedule is read.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Mapping

from django.utils import timezone
from django.utils.dateparse import parse_date

from audit.models import AuditAction
from audit.services import recorder
from bookings.models import Booking, Installment
from core import idempotency
from core.db import ledger_transaction
from core.errors import AlreadyPaid, IllegalTransition, ScheduleMismatch
from core.money import ZERO, money_str, require_positive, to_money
from core.outcomes import LedgerOutcome

logger = logging.getLogger(__name__)


def _due_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = parse_date(str(value)) if value else None
    if parsed is None:
        raise ScheduleMismatch("Every installment needs a valid due date.", due_date=str(value))
    return parsed


def _normalize(installments: Iterable[Mapping]) -> list[tuple[date, Decimal]]:
    rows = [(_due_date(item.get("due_date")), require_positive("amount", item.get("amount"))) for item in installments]
    if not rows:
        raise ScheduleMismatch("A payment schedule needs at least one installment.")
    for (previous, _), (current, _) in zip(rows, rows[1:]):
        if current < previous:
            raise ScheduleMismatch(
                "Installment due dates must not go backwards.",
                previous=previous.isoformat(),
                due_date=current.isoformat(),
            )
    return rows


def _settled_prefix(amounts: list[Decimal], paid: Decimal) -> int | None:
    """How many leading ``amounts`` add up to exactly ``paid``, or ``None``."""
    running, count = ZERO, 0
    for amount in amounts:
        if running >= paid:
            break
        running += amount
        count += 1
    return count if running == paid else None


def schedule_total(booking: Booking) -> Decimal:
    return sum((item.amount for item in booking.installments.all()), ZERO)


def pending_covering(booking: Booking, amount: Decimal) -> list[Installment]:
    """
    The leading pending installments that a direct payment of ``amount`` settles.

    Empty for a booking without a schedule. A payment that stops part-way
    through an installment raises ``ScheduleMismatch``.
    """
    pending = list(booking.installments.filter(status=Installment.PENDING))
    if not pending:
        return []
    count = _settled_prefix([item.amount for item in pending], amount)
    if count is None:
        raise ScheduleMismatch(
            "Payments on a scheduled booking must settle whole installments.",
            booking_id=booking.pk,
            amount=money_str(amount),
            next_index=pending[0].sequence,
            next_amount=money_str(pending[0].amount),
        )
    return pending[:count]


def settle_installments(
    booking: Booking,
    installments: Iterable[Installment],
    outcome: LedgerOutcome,
    *,
    paid_at=None,
    actor=None,
    request=None,
) -> None:
    paid_at = paid_at or timezone.now()
    for installment in installments:
        updated = Installment.objects.filter(pk=installment.pk, status=Installment.PENDING).update(
            status=Installment.PAID,
            paid_at=paid_at,
        )
        if not updated:
            raise AlreadyPaid(
                f"Installment {installment.sequence} was paid by another request.",
                booking_id=booking.pk,
                index=installment.sequence,
            )
        outcome.warn(
            recorder.record(
                actor,
                AuditAction.BOOKING_INSTALLMENT_PAID,
                "booking",
                booking.pk,
                [
                    {
                        "field": f"installments[{installment.sequence}].status",
                        "old": Installment.PENDING,
                        "new": Installment.PAID,
                    }
                ],
                request=request,
            )
        )


def ensure_schedule_matches(booking: Booking) -> None:
    """Raise ``ScheduleMismatch`` if a booking's schedule no longer sums to its total."""
    if not booking.installments.exists():
        return
    scheduled = schedule_total(booking)
    if scheduled != booking.total:
        raise ScheduleMismatch(
            "Installments do not add up to the booking total.",
            booking_id=booking.pk,
            scheduled=money_str(scheduled),
            total=money_str(booking.total),
        )


def schedule_installments(
    booking: Booking,
    installments: Iterable[Mapping],
    *,
    actor=None,
    request=None,
    idempotency_key: str | None = None,
) -> LedgerOutcome:
    """
    Replace the booking's schedule with ``installments`` (``due_date``, ``amount``).

    Only allowed while nothing on the current schedule has been paid. Money the
    booking already collected must cover whole leading installments; those are
    stored as paid.
    """
    key = idempotency.scoped_key(idempotency_key, AuditAction.BOOKING_SCHEDULE, booking.pk)
    rows = _normalize(installments)
    with ledger_transaction():
        if idempotency.lookup(key, AuditAction.BOOKING_SCHEDULE) is not None:
            booking.refresh_from_db()
            return LedgerOutcome(booking, replayed=True)
        if booking.is_terminal:
            raise IllegalTransition(
                f"Booking is {booking.status}; its schedule cannot change.",
                booking_id=booking.pk,
                current=booking.status,
            )
        if booking.installments.exclude(status=Installment.PENDING).exists():
            raise IllegalTransition(
                "Part of the current schedule is already settled.",
                booking_id=booking.pk,
            )
        scheduled = sum((amount for _, amount in rows), ZERO)
        if scheduled != booking.total:
            raise ScheduleMismatch(
                "Installments must add up to the booking total.",
                booking_id=booking.pk,
                scheduled=money_str(scheduled),
                total=money_str(booking.total),
            )
        settled = _settled_prefix([amount for _, amount in rows], booking.paid)
        if settled is None:
            raise ScheduleMismatch(
                "The amount already paid must cover whole leading installments.",
                booking_id=booking.pk,
                paid=money_str(booking.paid),
            )

        previous = [
            {"due_date": item.due_date.isoformat(), "amount": money_str(item.amount)}
            for item in booking.installments.all()
        ]
        # Bumps the version so a concurrent payment on a stale read conflicts.
        booking.commit(())
        booking.installments.all().delete()
        now = timezone.now()
        Installment.objects.bulk_create(
            Installment(
                booking=booking,
                sequence=index,
                due_date=due,
                amount=amount,
                status=Installment.PAID if index < settled else Installment.PENDING,
                paid_at=now if index < settled else None,
            )
            for index, (due, amount) in enumerate(rows)
        )
        current = [{"due_date": due.isoformat(), "amount": money_str(amount)} for due, amount in rows]

        outcome = LedgerOutcome(booking)
        outcome.warn(
            recorder.record(
                actor,
                AuditAction.BOOKING_SCHEDULE,
                "booking",
                booking.pk,
                [{"field": "installments", "old": previous, "new": current}],
                request=request,
            )
        )
        idempotency.remember(key, AuditAction.BOOKING_SCHEDULE, "booking", booking.pk)
    logger.info("Scheduled %s installments for booking %s", len(rows), booking.pk)
    return outcome


def mark_installment_paid(
    booking: Booking,
    index: int,
    *,
    paid_at=None,
    method: str = "knet",
    gateway_reference: str = "",
    actor=None,
    request=None,
    idempotency_key: str | None = None,
) -> LedgerOutcome:
    from bookings.services.ledger import record_payment

    key = idempotency.scoped_key(idempotency_key, AuditAction.BOOKING_INSTALLMENT_PAID, booking.pk, index)
    with ledger_transaction():
        if idempotency.lookup(key, AuditAction.BOOKING_INSTALLMENT_PAID) is not None:
            booking.refresh_from_db()
            return LedgerOutcome(booking, replayed=True)
        installment = booking.installments.filter(sequence=index).first()
        if installment is None:
            raise ScheduleMismatch("No installment at that position.", booking_id=booking.pk, index=index)
        if installment.status != Installment.PENDING:
            raise AlreadyPaid(
                f"Installment {index} is already {installment.status}.",
                booking_id=booking.pk,
                index=index,
            )

        outcome = record_payment(
            booking,
            installment.amount,
            method=method,
            gateway_reference=gateway_reference,
            installment=installment,
            actor=actor,
            request=request,
        )
        settle_installments(booking, [installment], outcome, paid_at=paid_at, actor=actor, request=request)
        idempotency.remember(key, AuditAction.BOOKING_INSTALLMENT_PAID, "booking", booking.pk)
    return outcome


def rebalance_after_refund(booking: Booking, amount: Decimal) -> None:
    """
    Take ``amount`` off the schedule after the booking total dropped by it.

    Refunds only return collected money, so they come off paid installments,
    latest first. An installment refunded in full is waived.
    """
    remaining_cut = to_money(amount)
    if remaining_cut == ZERO or not booking.installments.exists():
        return
    paid = list(booking.installments.filter(status=Installment.PAID).order_by("-sequence"))
    for item in paid:
        if remaining_cut == ZERO:
            break
        cut = min(item.amount, remaining_cut)
        item.amount -= cut
        remaining_cut -= cut
        if item.amount == ZERO:
            item.status = Installment.WAIVED
        item.save(update_fields=["amount", "status"])
    if remaining_cut != ZERO:
        raise ScheduleMismatch(
            "Refund exceeds the paid installments.",
            booking_id=booking.pk,
            refund=money_str(amount),
        )
    logger.info("Rebalanced schedule of booking %s after refund of %s", booking.pk, money_str(amount))


def installment_status(installment: Installment, now=None) -> str:
    return installment.display_status(now)


def schedule_view(booking: Booking, now=None) -> list[dict]:
    return [
        {
            "index": item.sequence,
            "due_date": item.due_date,
            "amount": item.amount,
            "status": installment_status(item, now),
            "paid_at": item.paid_at,
        }
        for item in booking.installments.all()
    ]
