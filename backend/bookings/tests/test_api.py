from decimal import Decimal

import pytest
from django.utils import timezone

from bookings.models import Booking
from bookings.services import ledger


def _url(booking, command=""):
    base = f"/api/bookings/{booking.pk}/"
    return f"{base}{command}/" if command else base


@pytest.mark.django_db
def test_traveler_books_a_trip(api_client, traveler, trip):
    api_client.force_authenticate(user=traveler)

    response = api_client.post(
        "/api/bookings/",
        {"trip": trip.pk, "passenger_count": 2, "special_requests": "Wheelchair at the airport"},
        format="json",
    )

    assert response.status_code == 201
    body = response.data["booking"]
    assert body["total"] == "200.000"
    assert body["remaining"] == "200.000"
    assert body["status"] == Booking.PENDING_PAYMENT
    assert "internal_notes" not in body
    assert response.data["warnings"] == []
    assert response.data["replayed"] is False
    trip.refresh_from_db()
    assert trip.booked_count == 2


@pytest.mark.django_db
def test_create_replays_with_idempotency_key(api_client, traveler, trip):
    api_client.force_authenticate(user=traveler)
    payload = {"trip": trip.pk, "passenger_count": 1}

    first = api_client.post("/api/bookings/", payload, format="json", HTTP_IDEMPOTENCY_KEY="book-1")
    second = api_client.post("/api/bookings/", payload, format="json", HTTP_IDEMPOTENCY_KEY="book-1")

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.data["replayed"] is True
    assert second.data["booking"]["id"] == first.data["booking"]["id"]
    assert Booking.objects.count() == 1


@pytest.mark.django_db
def test_overbooking_reports_remaining_seats(api_client, traveler, trip):
    api_client.force_authenticate(user=traveler)

    response = api_client.post("/api/bookings/", {"trip": trip.pk, "passenger_count": 11}, format="json")

    assert response.status_code == 409
    assert response.data["code"] == "capacity_exceeded"
    assert response.data["remaining"] == 10


@pytest.mark.django_db
def test_only_staff_grant_discounts(api_client, traveler, operator, trip):
    payload = {"trip": trip.pk, "passenger_count": 1, "discount": "10.000"}

    api_client.force_authenticate(user=traveler)
    assert api_client.post("/api/bookings/", payload, format="json").status_code == 403

    api_client.force_authenticate(user=operator)
    response = api_client.post("/api/bookings/", payload, format="json")
    assert response.status_code == 201
    assert response.data["booking"]["total"] == "90.000"


@pytest.mark.django_db
def test_anonymous_requests_are_rejected(api_client, trip):
    response = api_client.post("/api/bookings/", {"trip": trip.pk, "passenger_count": 1}, format="json")

    assert response.status_code == 401


@pytest.mark.django_db
def test_traveler_pays_own_booking(api_client, traveler, make_booking):
    booking = make_booking(2)
    api_client.force_authenticate(user=traveler)

    response = api_client.post(_url(booking, "payments"), {"amount": "50.000"}, format="json")

    assert response.status_code == 200
    assert response.data["booking"]["status"] == Booking.PARTIALLY_PAID
    assert response.data["booking"]["paid"] == "50.000"
    assert response.data["booking"]["version"] == 1


@pytest.mark.django_db
def test_other_travelers_cannot_see_or_pay_a_booking(api_client, other_traveler, make_booking):
    booking = make_booking(1)
    api_client.force_authenticate(user=other_traveler)

    assert api_client.get(_url(booking)).status_code == 404
    assert api_client.post(_url(booking, "payments"), {"amount": "50.000"}, format="json").status_code == 404


@pytest.mark.django_db
def test_bad_payment_amount_is_a_client_error(api_client, traveler, make_booking):
    booking = make_booking(1)
    api_client.force_authenticate(user=traveler)

    response = api_client.post(_url(booking, "payments"), {"amount": "150.000"}, format="json")

    assert response.status_code == 400
    assert response.data["code"] == "invalid_amount"


@pytest.mark.django_db
def test_only_staff_confirm(api_client, traveler, operator, make_booking):
    booking = make_booking(1)

    api_client.force_authenticate(user=traveler)
    assert api_client.post(_url(booking, "confirm")).status_code == 403

    api_client.force_authenticate(user=operator)
    response = api_client.post(_url(booking, "confirm"))
    assert response.status_code == 200
    assert response.data["booking"]["status"] == Booking.CONFIRMED
    assert response.data["booking"]["confirmed_at"] is not None


@pytest.mark.django_db
def test_advancing_unpaid_booking_is_a_conflict(api_client, operator, make_booking):
    booking = make_booking(1)
    api_client.force_authenticate(user=operator)

    response = api_client.post(_url(booking, "advance"), {"target": Booking.COMPLETED}, format="json")

    assert response.status_code == 409
    assert response.data["code"] == "payment_incomplete"
    assert response.data["target"] == Booking.COMPLETED


@pytest.mark.django_db
def test_payment_statuses_cannot_be_set_by_advance(api_client, operator, make_booking):
    booking = make_booking(1)
    api_client.force_authenticate(user=operator)

    response = api_client.post(_url(booking, "advance"), {"target": Booking.FULLY_PAID}, format="json")

    assert response.status_code == 400
    assert "target" in response.data


@pytest.mark.django_db
def test_cancel_paid_booking_requires_refund(api_client, traveler, make_booking, trip):
    booking = make_booking(2)
    ledger.record_payment(booking, Decimal("60.000"))
    api_client.force_authenticate(user=traveler)

    refused = api_client.post(_url(booking, "cancel"), {"reason": "Visa denied"}, format="json")
    assert refused.status_code == 409
    assert refused.data["code"] == "refund_required"
    assert refused.data["paid"] == "60.000"

    response = api_client.post(
        _url(booking, "cancel"),
        {"reason": "Visa denied", "refund_amount": "60.000"},
        format="json",
    )
    assert response.status_code == 200
    assert response.data["booking"]["status"] == Booking.CANCELLED
    assert response.data["booking"]["refunded_amount"] == "60.000"
    trip.refresh_from_db()
    assert trip.booked_count == 0


@pytest.mark.django_db
def test_only_staff_refund(api_client, traveler, operator, make_booking):
    booking = make_booking(1)
    ledger.record_payment(booking, Decimal("100.000"))

    api_client.force_authenticate(user=traveler)
    assert api_client.post(_url(booking, "refund"), {"amount": "100.000"}, format="json").status_code == 403

    api_client.force_authenticate(user=operator)
    response = api_client.post(_url(booking, "refund"), {"amount": "100.000", "reason": "Trip cancelled"}, format="json")
    assert response.status_code == 200
    assert response.data["booking"]["status"] == Booking.REFUNDED


@pytest.mark.django_db
def test_schedule_and_pay_installment(api_client, traveler, operator, make_booking):
    booking = make_booking(2)
    first_due = timezone.localdate() + timezone.timedelta(days=5)
    second_due = first_due + timezone.timedelta(days=30)

    api_client.force_authenticate(user=operator)
    response = api_client.post(
        _url(booking, "schedule"),
        {
            "installments": [
                {"due_date": first_due.isoformat(), "amount": "80.000"},
                {"due_date": second_due.isoformat(), "amount": "120.000"},
            ]
        },
        format="json",
    )
    assert response.status_code == 200
    assert [row["amount"] for row in response.data["booking"]["installments"]] == ["80.000", "120.000"]

    api_client.force_authenticate(user=traveler)
    response = api_client.post(_url(booking, "installments/0/pay"), {"gateway_reference": "KNET-9"}, format="json")
    assert response.status_code == 200
    installments = response.data["booking"]["installments"]
    assert installments[0]["status"] == "paid"
    assert installments[1]["status"] == "pending"
    assert response.data["booking"]["paid"] == "80.000"

    again = api_client.post(_url(booking, "installments/0/pay"), {}, format="json")
    assert again.status_code == 409
    assert again.data["code"] == "already_paid"


@pytest.mark.django_db
def test_direct_payment_on_scheduled_booking(api_client, traveler, operator, make_booking):
    booking = make_booking(2)
    due = timezone.localdate() + timezone.timedelta(days=5)
    api_client.force_authenticate(user=operator)
    api_client.post(
        _url(booking, "schedule"),
        {"installments": [{"due_date": due.isoformat(), "amount": "100.000"}, {"due_date": due.isoformat(), "amount": "100.000"}]},
        format="json",
    )

    api_client.force_authenticate(user=traveler)
    partial = api_client.post(_url(booking, "payments"), {"amount": "150.000"}, format="json")
    assert partial.status_code == 400
    assert partial.data["code"] == "schedule_mismatch"

    response = api_client.post(_url(booking, "payments"), {"amount": "100.000"}, format="json")
    assert response.status_code == 200
    assert [row["status"] for row in response.data["booking"]["installments"]] == ["paid", "pending"]

    again = api_client.post(_url(booking, "installments/0/pay"), {}, format="json")
    assert again.status_code == 409
    assert again.data["code"] == "already_paid"


@pytest.mark.django_db
def test_schedule_mismatch_is_reported(api_client, operator, make_booking):
    booking = make_booking(2)
    due = timezone.localdate() + timezone.timedelta(days=5)
    api_client.force_authenticate(user=operator)

    response = api_client.post(
        _url(booking, "schedule"),
        {"installments": [{"due_date": due.isoformat(), "amount": "150.000"}]},
        format="json",
    )

    assert response.status_code == 400
    assert response.data["code"] == "schedule_mismatch"


@pytest.mark.django_db
def test_listing_is_scoped_to_the_caller(api_client, traveler, other_traveler, operator, make_booking):
    mine = make_booking(1)
    theirs = make_booking(2, by=other_traveler)

    api_client.force_authenticate(user=traveler)
    response = api_client.get("/api/bookings/")
    assert [row["id"] for row in response.data] == [mine.pk]

    api_client.force_authenticate(user=operator)
    response = api_client.get("/api/bookings/")
    assert {row["id"] for row in response.data} == {mine.pk, theirs.pk}
    assert all("internal_notes" in row for row in response.data)


@pytest.mark.django_db
def test_listing_filters_by_status(api_client, operator, make_booking, other_traveler):
    cancelled = make_booking(1)
    make_booking(1, by=other_traveler)
    ledger.cancel_booking(cancelled)
    api_client.force_authenticate(user=operator)

    response = api_client.get("/api/bookings/", {"status": Booking.CANCELLED})

    assert response.status_code == 200
    assert [row["id"] for row in response.data] == [cancelled.pk]

