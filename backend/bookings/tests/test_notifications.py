import logging
import smtplib
from decimal import Decimal

import pytest

from bookings.models import Booking
from bookings.services import emails, ledger


@pytest.mark.django_db
def test_confirmation_mails_the_traveler(make_booking, mailoutbox, django_capture_on_commit_callbacks):
    booking = make_booking(2)

    with django_capture_on_commit_callbacks(execute=True):
        ledger.confirm_booking(booking)

    assert len(mailoutbox) == 1
    message = mailoutbox[0]
    assert message.subject == "Ramadan Umrah booking confirmed"
    assert message.to == ["fatima@example.test"]
    assert message.from_email == "Al Noor Campaign via Rahal <notifications@rahal.app>"
    assert "Remaining: 200.000 KWD" in message.body


@pytest.mark.django_db
def test_partial_payment_sends_nothing(make_booking, mailoutbox, django_capture_on_commit_callbacks):
    booking = make_booking(2)

    with django_capture_on_commit_callbacks(execute=True):
        ledger.record_payment(booking, Decimal("50.000"))

    assert mailoutbox == []


@pytest.mark.django_db
def test_mail_waits_for_commit(make_booking, mailoutbox, django_capture_on_commit_callbacks):
    booking = make_booking(1)

    with django_capture_on_commit_callbacks(execute=False) as callbacks:
        ledger.record_payment(booking, Decimal("100.000"))

    assert mailoutbox == []
    assert len(callbacks) == 1


@pytest.mark.django_db
def test_only_status_changes_publish_events(make_booking, django_capture_on_commit_callbacks):
    booking = make_booking(2)
    ledger.record_payment(booking, Decimal("50.000"))

    with django_capture_on_commit_callbacks(execute=False) as callbacks:
        ledger.record_payment(booking, Decimal("50.000"))
        ledger.apply_refund_adjustment(booking, Decimal("20.000"))
    assert callbacks == []

    with django_capture_on_commit_callbacks(execute=False) as callbacks:
        ledger.record_payment(booking, booking.remaining)
    assert len(callbacks) == 1
    assert booking.status == Booking.FULLY_PAID


@pytest.mark.django_db
def test_cancellation_mail_includes_reason(make_booking, mailoutbox, django_capture_on_commit_callbacks):
    booking = make_booking(1)

    with django_capture_on_commit_callbacks(execute=True):
        ledger.cancel_booking(booking, "Flight schedule changed")

    assert [message.subject for message in mailoutbox] == ["Ramadan Umrah booking cancelled"]
    assert "Reason: Flight schedule changed" in mailoutbox[0].body


@pytest.mark.django_db
def test_mail_failure_is_logged_and_booking_kept(
    make_booking, mailoutbox, monkeypatch, caplog, django_capture_on_commit_callbacks
):
    booking = make_booking(1)

    def refuse(*args, **kwargs):
        raise smtplib.SMTPServerDisconnected("connection lost")

    monkeypatch.setattr(emails, "send_mail", refuse)

    with caplog.at_level(logging.ERROR, logger="core.events"):
        with django_capture_on_commit_callbacks(execute=True):
            ledger.confirm_booking(booking)

    booking.refresh_from_db()
    assert booking.status == Booking.CONFIRMED
    assert mailoutbox == []
    assert "notify_traveler" in caplog.text
    assert "booking.confirm" in caplog.text


@pytest.mark.django_db
def test_email_without_recipient_is_skipped(make_booking, traveler, mailoutbox):
    traveler.email = ""
    traveler.save()
    booking = make_booking(1)
    ledger.confirm_booking(booking)

    assert emails.send_booking_status_email(booking=Booking.objects.get(pk=booking.pk)) == 0
    assert mailoutbox == []
