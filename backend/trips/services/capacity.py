"""
Seat inventory for trips.

Both operations are a single guarded ``UPDATE`` so that concurrent bookings
on the same trip cannot oversell it: the guard is evaluated by the database
against the current row, never against a value read earlier.
"""

from __future__ import annotations

import logging

from django.db.models import F, Value
from django.db.models.functions import Greatest

from core.errors import CapacityExceeded, InvalidQuantity
from trips.models import Trip

logger = logging.getLogger(__name__)


def reserve(trip: Trip, seats: int) -> Trip:
    if seats < 1:
        raise InvalidQuantity("Seats to reserve must be at least one.", seats=seats)
    updated = Trip.objects.filter(
        pk=trip.pk,
        booked_count__lte=F("total_capacity") - seats,
    ).update(booked_count=F("booked_count") + seats)
    trip.refresh_from_db(fields=["booked_count", "total_capacity"])
    if not updated:
        raise CapacityExceeded(
            "Not enough seats left on this trip.",
            trip_id=trip.pk,
            requested=seats,
            remaining=trip.remaining_capacity,
        )
    logger.info("Reserved %s seats on trip %s (%s left)", seats, trip.pk, trip.remaining_capacity)
    return trip


def release(trip: Trip, seats: int) -> Trip:
    """Return seats to the pool; remaining never exceeds total capacity."""
    if seats < 1:
        raise InvalidQuantity("Seats to release must be at least one.", seats=seats)
    Trip.objects.filter(pk=trip.pk).update(
        booked_count=Greatest(F("booked_count") - seats, Value(0)),
    )
    trip.refresh_from_db(fields=["booked_count", "total_capacity"])
    logger.info("Released %s seats on trip %s (%s left)", seats, trip.pk, trip.remaining_capacity)
    return trip
