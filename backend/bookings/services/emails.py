from __future__ import annotations

import logging
import smtplib
from typing import Iterable

from django.conf import settings
from django.core.mail import get_connection, send_mail

from bookings.models import Booking
from core.errors import DependencyUnavailable
from core.money import money_str

logger = logging.getLogger(__name__)

STATUS_SUBJECTS = {
    Booking.CONFIRMED: "{trip} booking confirmed",
    Booking.FULLY_PAID: "{trip} is fully paid",
    Booking.CANCELLED: "{trip} booking cancelled",
    Booking.REFUNDED: "{trip} booking refunded",
}


def _format_from_email(campaign_name: str) -> str:
    default_from = settings.DEFAULT_FROM_EMAIL
    email_addr = default_from
    if '<' in default_from and default_from.endswith('>'):
        email_addr = default_from.split('<', 1)[1].rstrip('>')
    return f"{campaign_name} via Rahal <{email_addr}>"


def _body(booking: Booking) -> list[str]:
    traveler = booking.traveler
    trip = booking.trip
    currency = settings.LEDGER_CURRENCY
    lines = [
        f"Hi {traveler.label},",
        "",
        f"Your booking #{booking.pk} for {trip.title} with {booking.campaign.name} is now {booking.get_status_display().lower()}.",
        f"Departure: {trip.departure_date:%B %d, %Y} from {trip.departure_city or 'the campaign office'}.",
        "",
        f"Total: {money_str(booking.total)} {currency}",
        f"Paid: {money_str(booking.paid)} {currency}",
        f"Remaining: {money_str(booking.remaining)} {currency}",
    ]
    if booking.refunded_amount:
        lines.append(f"Refunded: {money_str(booking.refunded_amount)} {currency}")
    if booking.cancellation_reason:
        lines += ["", f"Reason: {booking.cancellation_reason}"]
    lines += [
        "",
        f"View your booking: {settings.FRONTEND_URL}/bookings/{booking.pk}",
        "",
        "The Rahal Team",
    ]
    return lines


def send_booking_status_email(*, booking: Booking, recipients: Iterable[str] | None = None) -> int:
    """Mail the traveler about a status change. Returns the number of messages sent."""
    template = STATUS_SUBJECTS.get(booking.status)
    recipients = [address for address in (recipients or [booking.traveler.email]) if address]
    if template is None or not recipients:
        return 0
    connection = get_connection(timeout=settings.LEDGER_NOTIFICATION_TIMEOUT)
    try:
        sent = send_mail(
            template.format(trip=booking.trip.title),
            "\n".join(_body(booking)),
            _format_from_email(booking.campaign.name),
            recipients,
            fail_silently=False,
            connection=connection,
        )
    except (smtplib.SMTPException, OSError) as exc:
        raise DependencyUnavailable(
            "Booking notification could not be delivered.",
            booking_id=booking.pk,
            status=booking.status,
        ) from exc
    logger.info("Sent %s email for booking %s to %s", booking.status, booking.pk, ", ".join(recipients))
    return sent
