from django_filters import rest_framework as filters

from bookings.models import Booking


class BookingFilter(filters.FilterSet):
    status = filters.MultipleChoiceFilter(choices=Booking.STATUSES)
    created_after = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_before = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lt")

    class Meta:
        model = Booking
        fields = ["campaign", "trip", "traveler", "status"]
