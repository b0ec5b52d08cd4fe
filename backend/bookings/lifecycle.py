"""
Booking lifecycle rules.

A booking's visible status combines three independent signals:

* confirmation: a campaign approved the booking manually;
* payment stage: derived from ``paid`` against ``total``;
* operational stage: ``checked_in``, ``in_transit``, ``completed``.

The visible status is whichever signal ranks highest in the configured
precedence order (``LEDGER_STATUS_PRECEDENCE``). ``cancelled`` and ``refunded``
are terminal and override everything.

Nothing in this module touches the database.
"""

from __future__ import annotations

from typing import Optional, Sequence

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from core.errors import IllegalTransition, PaymentIncomplete
from core.money import BookingAmounts

PENDING_PAYMENT = "pending_payment"
CONFIRMED = "confirmed"
PARTIALLY_PAID = "partially_paid"
FULLY_PAID = "fully_paid"
CHECKED_IN = "checked_in"
IN_TRANSIT = "in_transit"
COMPLETED = "completed"
CANCELLED = "cancelled"
REFUNDED = "refunded"

STATUS_CHOICES = [
    (PENDING_PAYMENT, "Pending payment"),
    (CONFIRMED, "Confirmed"),
    (PARTIALLY_PAID, "Partially paid"),
    (FULLY_PAID, "Fully paid"),
    (CHECKED_IN, "Checked in"),
    (IN_TRANSIT, "In transit"),
    (COMPLETED, "Completed"),
    (CANCELLED, "Cancelled"),
    (REFUNDED, "Refunded"),
]

TERMINAL_STATUSES = frozenset({CANCELLED, REFUNDED})
PAYMENT_STATUSES = frozenset({PARTIALLY_PAID, FULLY_PAID})
OPERATIONAL_STATUSES = (CHECKED_IN, IN_TRANSIT, COMPLETED)
OPERATIONAL_CHOICES = [(status, label) for status, label in STATUS_CHOICES if status in OPERATIONAL_STATUSES]
ADVANCE_TARGETS = frozenset({CONFIRMED, *OPERATIONAL_STATUSES})

DEFAULT_PRECEDENCE = (CONFIRMED, PARTIALLY_PAID, FULLY_PAID, CHECKED_IN, IN_TRANSIT, COMPLETED)


def precedence() -> tuple[str, ...]:
    order = tuple(getattr(settings, "LEDGER_STATUS_PRECEDENCE", DEFAULT_PRECEDENCE))
    if sorted(order) != sorted(DEFAULT_PRECEDENCE):
        raise ImproperlyConfigured(
            "LEDGER_STATUS_PRECEDENCE must order exactly: " + ", ".join(DEFAULT_PRECEDENCE)
        )
    return order


def rank(status: str, order: Optional[Sequence[str]] = None) -> int:
    if status == PENDING_PAYMENT:
        return 0
    order = order or precedence()
    if status not in order:
        raise IllegalTransition(f"'{status}' has no place in the booking precedence order.", status=status)
    return order.index(status) + 1


def payment_stage(amounts: BookingAmounts) -> Optional[str]:
    if amounts.is_fully_paid:
        return FULLY_PAID
    if amounts.is_partially_paid:
        return PARTIALLY_PAID
    return None


def combine_status(
    *,
    confirmed: bool,
    payment: Optional[str],
    operational: Optional[str],
    terminal: Optional[str] = None,
) -> str:
    if terminal:
        return terminal
    order = precedence()
    candidates = [PENDING_PAYMENT]
    if confirmed:
        candidates.append(CONFIRMED)
    if payment:
        candidates.append(payment)
    if operational:
        candidates.append(operational)
    return max(candidates, key=lambda status: rank(status, order))


def is_open(status: str) -> bool:
    return status not in TERMINAL_STATUSES


def can_terminate(status: str) -> bool:
    """Cancellation and refund are reachable from every non-terminal, non-completed status."""
    return status not in TERMINAL_STATUSES and status != COMPLETED


def check_advance(
    current: str,
    target: str,
    *,
    fully_paid: bool,
    confirmed: bool,
    override: bool = False,
) -> bool:
    """
    Validate a forward move to ``target``.

    Returns ``True`` when the move only passes because of ``override``; the
    caller must check the campaign allows it and audit it as such.
    """
    if current in TERMINAL_STATUSES:
        raise IllegalTransition(f"Booking is {current}; no further transitions.", current=current, target=target)
    if target not in ADVANCE_TARGETS:
        raise IllegalTransition(
            f"'{target}' cannot be set directly.",
            current=current,
            target=target,
        )
    order = precedence()
    if rank(target, order) <= rank(current, order):
        raise IllegalTransition(
            f"Cannot move from {current} to {target}.",
            current=current,
            target=target,
        )
    if target in OPERATIONAL_STATUSES and not (fully_paid or confirmed):
        if not override:
            raise PaymentIncomplete(
                f"Booking must be fully paid or confirmed before it can be {target}.",
                current=current,
                target=target,
            )
        return True
    return False
