from django.db.models import Q
from rest_framework import permissions, viewsets
from rest_framework.exceptions import PermissionDenied

from campaigns.permissions import can_operate_campaign, managed_campaign_ids
from .models import Trip
from .serializers import TripSerializer


class TripViewSet(viewsets.ModelViewSet):
    """
    Travelers see bookable trips; campaign staff also see and edit their own
    campaigns' trips. Seat counts are only changed by bookings.
    """

    serializer_class = TripSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ["campaign", "status", "trip_type"]
    search_fields = ["title", "departure_city"]
    ordering_fields = ["departure_date", "base_price"]
    http_method_names = ["get", "post", "patch", "put", "head", "options"]

    def get_queryset(self):
        user = self.request.user
        queryset = Trip.objects.select_related("campaign")
        if user.is_platform_admin:
            return queryset
        return queryset.filter(
            Q(status__in=Trip.BOOKABLE_STATUSES, campaign__is_active=True)
            | Q(campaign_id__in=managed_campaign_ids(user))
        )

    def perform_create(self, serializer):
        campaign = serializer.validated_data["campaign"]
        if not can_operate_campaign(self.request.user, campaign.id):
            raise PermissionDenied("You cannot add trips to this campaign.")
        serializer.save()

    def perform_update(self, serializer):
        if not can_operate_campaign(self.request.user, serializer.instance.campaign_id):
            raise PermissionDenied("You cannot edit this trip.")
        serializer.save()
