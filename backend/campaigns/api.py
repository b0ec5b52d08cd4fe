from django.shortcuts import get_object_or_404
from rest_framework import serializers, viewsets
from rest_framework.permissions import IsAuthenticated
from rest_framework.views import APIView

from .models import Campaign
from .permissions import IsCampaignStaff, managed_campaign_ids


class CampaignSerializer(serializers.ModelSerializer):
    class Meta:
        model = Campaign
        fields = [
            "id",
            "name",
            "slug",
            "verification_status",
            "is_active",
            "allows_status_override",
            "created_at",
        ]
        read_only_fields = fields


class CampaignViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = CampaignSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        user = self.request.user
        queryset = Campaign.objects.all()
        if user.is_platform_admin:
            return queryset
        return queryset.filter(id__in=managed_campaign_ids(user))


class CampaignBaseView(APIView):
    """Resolve ``campaign_id`` from the URL before permission checks run."""

    permission_classes = [IsAuthenticated, IsCampaignStaff]
    campaign: Campaign | None = None

    def initial(self, request, *args, **kwargs):
        self.campaign = get_object_or_404(Campaign, pk=kwargs.get("campaign_id"))
        super().initial(request, *args, **kwargs)
