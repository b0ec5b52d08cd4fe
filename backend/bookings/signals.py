import logging

from django.dispatch import receiver

from bookings.models import Booking
from bookings.services.emails import STATUS_SUBJECTS, send_booking_status_email
from core.events import ledger_transition

logger = logging.getLogger(__name__)


@receiver(ledger_transition)
def notify_traveler(sender, event, **kwargs):
    if event.entity_type != "booking":
        return None
    if event.new_status == event.old_status or event.new_status not in STATUS_SUBJECTS:
        return None
    booking = Booking.objects.select_related("traveler", "trip", "campaign").filter(pk=event.entity_id).first()
    if booking is None:
        logger.warning("Booking %s vanished before its %s notification", event.entity_id, event.action)
        return None
    return send_booking_status_email(booking=booking)
