from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.generics import ListAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.views import APIView

from campaigns.api import CampaignBaseView
from campaigns.permissions import IsPlatformAdmin
from core.api import idempotency_key_from, outcome_response
from payments.models import Payment, Payout
from payments.serializers import PaymentSerializer, PayoutCreateSerializer, PayoutProcessSerializer, PayoutSerializer
from payments.services.payouts import create_payout, mark_payout_processed


class CampaignPaymentListView(CampaignBaseView, ListAPIView):
    serializer_class = PaymentSerializer
    filterset_fields = ["booking", "direction", "method", "status"]

    def get_queryset(self):
        return Payment.objects.filter(campaign=self.campaign)


class CampaignPayoutListView(CampaignBaseView, ListAPIView):
    """Payout history for a campaign; platform admins create new ones with POST."""

    serializer_class = PayoutSerializer

    def get_queryset(self):
        return Payout.objects.filter(campaign=self.campaign)

    def get_permissions(self):
        if self.request.method == "POST":
            return [IsAuthenticated(), IsPlatformAdmin()]
        return super().get_permissions()

    def post(self, request, campaign_id):
        serializer = PayoutCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        outcome = create_payout(
            self.campaign,
            data["period_start"],
            data["period_end"],
            bank_name=data["bank_name"],
            iban=data["iban"],
            account_holder=data["account_holder"],
            actor=request.user,
            request=request,
            idempotency_key=idempotency_key_from(request),
        )
        code = status.HTTP_200_OK if outcome.replayed else status.HTTP_201_CREATED
        return outcome_response(outcome, PayoutSerializer(outcome.value).data, key="payout", status_code=code)


class PayoutProcessView(APIView):
    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def post(self, request, payout_id):
        payout = get_object_or_404(Payout, pk=payout_id)
        serializer = PayoutProcessSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        outcome = mark_payout_processed(payout, serializer.validated_data["status"], actor=request.user, request=request)
        return outcome_response(outcome, PayoutSerializer(outcome.value).data, key="payout")
