from decimal import Decimal

import pytest
from django.db import DatabaseError
from django.utils import timezone

from audit.models import AuditAction, AuditEntry
from bookings.models import Booking
from bookings.services import ledger
from core.errors import (
    AuditWriteFailed,
    CapacityExceeded,
    ConcurrentModification,
    IllegalTransition,
    InvalidAmount,
    InvalidQuantity,
    PaymentIncomplete,
    RefundRequired,
    TripNotBookable,
)
from core.money import ZERO
from core.retry import retry_on_conflict
from payments.models import Payment
from trips.models import Trip


def _actions(booking):
    return list(
        AuditEntry.objects.filter(entity_type="booking", entity_id=booking.pk)
        .order_by("id")
        .values_list("action", flat=True)
    )


def _assert_reconciled(booking):
    booking.refresh_from_db()
    assert booking.paid + booking.remaining == booking.total
    assert booking.total == booking.subtotal - booking.discount
    assert min(booking.subtotal, booking.discount, booking.total, booking.paid, booking.remaining) >= ZERO


@pytest.mark.django_db
def test_payments_move_booking_to_partially_then_fully_paid(make_booking):
    booking = make_booking(2, unit_price=Decimal("150.000"), discount=Decimal("15.000"))
    assert booking.subtotal == Decimal("300.000")
    assert booking.total == Decimal("285.000")
    assert booking.status == Booking.PENDING_PAYMENT

    ledger.record_payment(booking, Decimal("100.000"))
    assert booking.status == Booking.PARTIALLY_PAID
    assert booking.remaining == Decimal("185.000")

    ledger.record_payment(booking, Decimal("185.000"))
    booking.refresh_from_db()
    assert booking.status == Booking.FULLY_PAID
    assert booking.remaining == ZERO
    assert Payment.objects.filter(booking=booking, direction=Payment.INBOUND).count() == 2
    _assert_reconciled(booking)


@pytest.mark.django_db
def test_cancelling_unpaid_booking_returns_seats(make_booking, trip):
    assert trip.remaining_capacity == 10

    booking = make_booking(3)
    trip.refresh_from_db()
    assert trip.remaining_capacity == 7

    ledger.cancel_booking(booking, "Change of plans")
    trip.refresh_from_db()
    booking.refresh_from_db()
    assert trip.remaining_capacity == 10
    assert booking.status == Booking.CANCELLED
    assert booking.capacity_released
    assert booking.cancelled_at is not None


@pytest.mark.django_db
def test_cannot_complete_unpaid_booking_without_override(make_booking):
    booking = make_booking(1)

    with pytest.raises(PaymentIncomplete):
        ledger.advance_booking(booking, Booking.COMPLETED)

    booking.refresh_from_db()
    assert booking.status == Booking.PENDING_PAYMENT


@pytest.mark.django_db
def test_stale_concurrent_payment_conflicts_then_succeeds_on_retry(make_booking):
    booking = make_booking(2)
    first = Booking.objects.get(pk=booking.pk)
    second = Booking.objects.get(pk=booking.pk)

    ledger.record_payment(first, Decimal("50.000"))
    with pytest.raises(ConcurrentModification):
        ledger.record_payment(second, Decimal("30.000"))

    retry_on_conflict(lambda: ledger.record_payment(second, Decimal("30.000")), refresh=second.refresh_from_db)

    booking.refresh_from_db()
    assert booking.paid == Decimal("80.000")
    assert booking.remaining == Decimal("120.000")
    assert Payment.objects.filter(booking=booking).count() == 2
    assert booking.version == 2


@pytest.mark.django_db
def test_overbooking_is_rejected_without_side_effects(make_booking, trip):
    with pytest.raises(CapacityExceeded) as excinfo:
        make_booking(11)

    assert excinfo.value.context == {"trip_id": trip.pk, "requested": 11, "remaining": 10}
    trip.refresh_from_db()
    assert trip.booked_count == 0
    assert not Booking.objects.exists()


@pytest.mark.django_db
def test_booking_needs_at_least_one_passenger(make_booking):
    with pytest.raises(InvalidQuantity):
        make_booking(0)


@pytest.mark.django_db
def test_discount_larger_than_subtotal_is_rejected(make_booking, trip):
    with pytest.raises(InvalidAmount):
        make_booking(1, discount=Decimal("100.001"))
    trip.refresh_from_db()
    assert trip.booked_count == 0


@pytest.mark.django_db
def test_trip_must_be_open_for_registration(make_booking, trip):
    trip.status = Trip.DRAFT
    trip.save()
    with pytest.raises(TripNotBookable):
        make_booking(1)

    trip.status = Trip.REGISTRATION_OPEN
    trip.registration_deadline = timezone.now() - timezone.timedelta(hours=1)
    trip.save()
    with pytest.raises(TripNotBookable):
        make_booking(1)


@pytest.mark.django_db
def test_paid_booking_needs_matching_refund_to_cancel(make_booking, trip):
    booking = make_booking(2)
    ledger.record_payment(booking, Decimal("40.000"))

    with pytest.raises(RefundRequired):
        ledger.cancel_booking(booking, "No longer travelling")
    with pytest.raises(InvalidAmount):
        ledger.cancel_booking(booking, "No longer travelling", refund_amount=Decimal("39.000"))

    ledger.cancel_booking(booking, "No longer travelling", refund_amount=Decimal("40.000"))

    booking.refresh_from_db()
    trip.refresh_from_db()
    assert booking.status == Booking.CANCELLED
    assert booking.paid == ZERO
    assert booking.refunded_amount == Decimal("40.000")
    assert trip.booked_count == 0
    refund = Payment.objects.get(booking=booking, direction=Payment.OUTBOUND)
    assert refund.amount == Decimal("40.000")
    _assert_reconciled(booking)


@pytest.mark.django_db
def test_cancel_twice_releases_capacity_once(make_booking, trip, other_traveler):
    booking = make_booking(3)
    make_booking(2, by=other_traveler)

    ledger.cancel_booking(booking, "First")
    outcome = ledger.cancel_booking(Booking.objects.get(pk=booking.pk), "Second")

    trip.refresh_from_db()
    booking.refresh_from_db()
    assert outcome.value.status == Booking.CANCELLED
    assert booking.cancellation_reason == "First"
    assert trip.booked_count == 2
    assert AuditEntry.objects.filter(action=AuditAction.TRIP_RELEASE, entity_id=trip.pk).count() == 1


@pytest.mark.django_db
def test_completed_booking_cannot_be_cancelled(make_booking):
    booking = make_booking(1)
    ledger.record_payment(booking, booking.total)
    ledger.advance_booking(booking, Booking.COMPLETED)

    with pytest.raises(IllegalTransition):
        ledger.cancel_booking(booking, refund_amount=booking.paid)


@pytest.mark.django_db
def test_refund_closes_booking_and_returns_seats(make_booking, trip):
    booking = make_booking(2)
    ledger.record_payment(booking, Decimal("200.000"))

    ledger.refund_booking(booking, Decimal("150.000"), "Medical emergency")

    booking.refresh_from_db()
    trip.refresh_from_db()
    assert booking.status == Booking.REFUNDED
    assert booking.total == Decimal("50.000")
    assert booking.paid == Decimal("50.000")
    assert booking.refunded_amount == Decimal("150.000")
    assert booking.refunded_at is not None
    assert trip.booked_count == 0
    _assert_reconciled(booking)

    with pytest.raises(IllegalTransition):
        ledger.refund_booking(booking, Decimal("10.000"))
    with pytest.raises(IllegalTransition):
        ledger.record_payment(booking, Decimal("10.000"))


@pytest.mark.django_db
def test_refund_cannot_exceed_paid(make_booking):
    booking = make_booking(1)
    ledger.record_payment(booking, Decimal("20.000"))

    with pytest.raises(InvalidAmount):
        ledger.refund_booking(booking, Decimal("25.000"))
    booking.refresh_from_db()
    assert booking.status == Booking.PARTIALLY_PAID


@pytest.mark.django_db
def test_payments_only_ever_increase_paid(make_booking):
    booking = make_booking(1)
    seen = [booking.paid]

    while booking.remaining > ZERO:
        ledger.record_payment(booking, min(Decimal("30.000"), booking.remaining))
        seen.append(booking.paid)

    assert seen == sorted(set(seen))
    assert booking.paid == booking.total
    with pytest.raises(InvalidAmount):
        ledger.record_payment(booking, Decimal("0.001"))


@pytest.mark.django_db
def test_confirmation_combines_with_payment(make_booking):
    booking = make_booking(1)

    ledger.confirm_booking(booking)
    assert booking.status == Booking.CONFIRMED
    assert booking.confirmed_at is not None

    ledger.record_payment(booking, Decimal("10.000"))
    assert booking.status == Booking.PARTIALLY_PAID

    again = ledger.confirm_booking(booking)
    assert again.value.status == Booking.PARTIALLY_PAID
    assert _actions(booking).count(AuditAction.BOOKING_CONFIRM) == 1


@pytest.mark.django_db
def test_advance_to_confirmed_is_the_confirmation_step(make_booking):
    booking = make_booking(1)

    ledger.advance_booking(booking, Booking.CONFIRMED)

    booking.refresh_from_db()
    assert booking.status == Booking.CONFIRMED
    assert booking.confirmed_at is not None


@pytest.mark.django_db
def test_confirmed_booking_can_check_in_before_paying(make_booking):
    booking = make_booking(1)
    ledger.confirm_booking(booking)

    ledger.advance_booking(booking, Booking.CHECKED_IN)
    ledger.advance_booking(booking, Booking.IN_TRANSIT)

    booking.refresh_from_db()
    assert booking.status == Booking.IN_TRANSIT
    assert booking.operational_status == Booking.IN_TRANSIT
    with pytest.raises(IllegalTransition):
        ledger.advance_booking(booking, Booking.CHECKED_IN)


@pytest.mark.django_db
def test_override_needs_campaign_permission(make_booking, campaign):
    booking = make_booking(1)

    with pytest.raises(PaymentIncomplete):
        ledger.advance_booking(booking, Booking.CHECKED_IN, override=True)

    campaign.allows_status_override = True
    campaign.save()
    booking = Booking.objects.get(pk=booking.pk)
    ledger.advance_booking(booking, Booking.CHECKED_IN, override=True)

    booking.refresh_from_db()
    assert booking.status == Booking.CHECKED_IN
    assert AuditAction.BOOKING_ADVANCE_OVERRIDE in _actions(booking)


@pytest.mark.django_db
def test_completed_booking_can_still_collect_its_balance(make_booking, campaign):
    campaign.allows_status_override = True
    campaign.save()
    booking = make_booking(1)
    ledger.advance_booking(booking, Booking.COMPLETED, override=True)

    ledger.record_payment(booking, booking.remaining)

    booking.refresh_from_db()
    assert booking.status == Booking.COMPLETED
    assert booking.remaining == ZERO


@pytest.mark.django_db
def test_repeated_command_with_same_key_is_applied_once(make_booking):
    booking = make_booking(1)

    first = ledger.record_payment(booking, Decimal("25.000"), idempotency_key="pay-1")
    second = ledger.record_payment(Booking.objects.get(pk=booking.pk), Decimal("25.000"), idempotency_key="pay-1")

    booking.refresh_from_db()
    assert not first.replayed
    assert second.replayed
    assert booking.paid == Decimal("25.000")
    assert Payment.objects.filter(booking=booking).count() == 1


@pytest.mark.django_db
def test_create_with_same_key_returns_existing_booking(trip, traveler):
    first = ledger.create_booking(trip, traveler, 2, idempotency_key="create-1")
    second = ledger.create_booking(trip, traveler, 2, idempotency_key="create-1")

    trip.refresh_from_db()
    assert second.replayed
    assert second.value.pk == first.value.pk
    assert trip.booked_count == 2


@pytest.mark.django_db
def test_every_mutation_is_audited_with_field_changes(make_booking, trip, traveler):
    booking = make_booking(2)
    ledger.record_payment(booking, Decimal("50.000"), actor=traveler)

    assert _actions(booking) == [AuditAction.BOOKING_CREATE, AuditAction.BOOKING_PAYMENT]
    assert AuditEntry.objects.filter(action=AuditAction.TRIP_RESERVE, entity_id=trip.pk).exists()
    payment_entry = AuditEntry.objects.get(action=AuditAction.BOOKING_PAYMENT)
    changes = {change["field"]: change for change in payment_entry.changes}
    assert changes["paid"] == {"field": "paid", "old": "0.000", "new": "50.000"}
    assert changes["status"]["new"] == Booking.PARTIALLY_PAID
    assert payment_entry.actor == traveler


@pytest.mark.django_db
def test_audit_failure_keeps_the_mutation_and_warns(monkeypatch, trip, traveler):
    def broken_create(**kwargs):
        raise DatabaseError("audit table unavailable")

    monkeypatch.setattr(AuditEntry.objects, "create", broken_create)

    outcome = ledger.create_booking(trip, traveler, 2)

    assert Booking.objects.filter(pk=outcome.value.pk).exists()
    trip.refresh_from_db()
    assert trip.booked_count == 2
    assert len(outcome.warnings) == 2
    assert all(isinstance(warning, AuditWriteFailed) for warning in outcome.warnings)
    assert outcome.warnings_payload()[0]["code"] == "audit_write_failed"


@pytest.mark.django_db
def test_trip_counts_match_open_bookings(make_booking, trip, other_traveler):
    kept = make_booking(2)
    cancelled = make_booking(3, by=other_traveler)
    refunded = make_booking(1)
    ledger.record_payment(refunded, Decimal("100.000"))

    ledger.cancel_booking(cancelled)
    ledger.refund_booking(refunded, Decimal("100.000"))

    trip.refresh_from_db()
    open_seats = sum(
        booking.passenger_count for booking in Booking.objects.exclude(status__in=[Booking.CANCELLED, Booking.REFUNDED])
    )
    assert trip.booked_count == open_seats == kept.passenger_count
    assert 0 <= trip.remaining_capacity <= trip.total_capacity


@pytest.mark.django_db
def test_bookings_are_never_deleted(make_booking):
    booking = make_booking(1)

    with pytest.raises(TypeError):
        booking.delete()
