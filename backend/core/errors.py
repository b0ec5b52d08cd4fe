"""
Typed error taxonomy for the booking ledger.

Every failed ledger command raises a subclass of ``LedgerError``. Callers
branch on the class (or its ``code``), never on the message text:

    try:
        record_payment(booking, amount)
    except ConcurrentModification:
        booking.refresh_from_db()   # retryable, try again with fresh state
    except InvalidAmount as exc:
        return {"code": exc.code, **exc.context}

``retryable`` marks the kinds a caller may re-issue unchanged (after refreshing
state); everything else is a local validation or state-machine failure that
needs a different request.
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    code = "ledger_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str = "", **context: Any):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.context = context

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code, "detail": self.message, **self.context}


class InvalidAmount(LedgerError):
    code = "invalid_amount"


class InvalidQuantity(LedgerError):
    code = "invalid_quantity"


class CapacityExceeded(LedgerError):
    code = "capacity_exceeded"
    status_code = 409


class TripNotBookable(LedgerError):
    code = "trip_not_bookable"
    status_code = 409


class IllegalTransition(LedgerError):
    code = "illegal_transition"
    status_code = 409


class PaymentIncomplete(LedgerError):
    code = "payment_incomplete"
    status_code = 409


class RefundRequired(LedgerError):
    code = "refund_required"
    status_code = 409


class ScheduleMismatch(LedgerError):
    code = "schedule_mismatch"


class AlreadyPaid(LedgerError):
    code = "already_paid"
    status_code = 409


class ResolutionRequired(LedgerError):
    code = "resolution_required"


class PayoutPeriodConflict(LedgerError):
    code = "payout_period_conflict"
    status_code = 409


class IdempotencyKeyReused(LedgerError):
    """The key was already used for a different command."""

    code = "idempotency_key_reused"
    status_code = 422


class ConcurrentModification(LedgerError):
    code = "concurrent_modification"
    status_code = 409
    retryable = True


class DependencyUnavailable(LedgerError):
    code = "dependency_unavailable"
    status_code = 503
    retryable = True


class AuditWriteFailed(LedgerError):
    """
    Non-fatal: carried on a successful ``LedgerOutcome`` as a warning.

    The recorder never raises this; the primary mutation it accompanied is
    authoritative and stays committed.
    """

    code = "audit_write_failed"
