from django.conf import settings
from rest_framework import serializers
from rest_framework.response import Response

from campaigns.api import CampaignBaseView
from reports.services.financials import campaign_summary


class SummaryWindowSerializer(serializers.Serializer):
    start = serializers.DateTimeField(required=False, allow_null=True, default=None)
    end = serializers.DateTimeField(required=False, allow_null=True, default=None)

    def validate(self, attrs):
        if attrs["start"] and attrs["end"] and attrs["end"] <= attrs["start"]:
            raise serializers.ValidationError({"end": "End must be after start."})
        return attrs


class FinancialSummaryView(CampaignBaseView):
    """GMV, platform fee, net payout and pending balance for one campaign."""

    def get(self, request, campaign_id):
        window = SummaryWindowSerializer(data=request.query_params)
        window.is_valid(raise_exception=True)
        summary = campaign_summary(self.campaign, window.validated_data["start"], window.validated_data["end"])
        return Response({"campaign": self.campaign.pk, "currency": settings.LEDGER_CURRENCY, **summary.as_dict()})
