from django.db.models import Q
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated

from campaigns.permissions import can_operate_campaign, managed_campaign_ids
from core.api import idempotency_key_from, outcome_response
from core.retry import retry_on_conflict
from disputes.models import Dispute
from disputes.serializers import (
    DisputeMessageCreateSerializer,
    DisputeMessageSerializer,
    DisputeOpenSerializer,
    DisputeSerializer,
    DisputeTransitionSerializer,
)
from disputes.services import workflow


class DisputeViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = DisputeSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ["campaign", "booking", "status", "dispute_type"]

    def get_queryset(self):
        user = self.request.user
        queryset = Dispute.objects.select_related("booking").prefetch_related("messages__sender")
        if user.is_platform_admin:
            return queryset
        return queryset.filter(
            Q(booking__traveler=user) | Q(filed_by=user) | Q(campaign_id__in=managed_campaign_ids(user))
        )

    def _data(self, dispute):
        return DisputeSerializer(self.get_queryset().get(pk=dispute.pk)).data

    def create(self, request, *args, **kwargs):
        serializer = DisputeOpenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        booking = data["booking"]
        if booking.traveler_id != request.user.pk and not can_operate_campaign(request.user, booking.campaign_id):
            raise PermissionDenied("Only the traveler or the campaign can dispute this booking.")
        outcome = workflow.open_dispute(
            booking,
            request.user,
            data["dispute_type"],
            data["subject"],
            data["description"],
            data["disputed_amount"],
            request=request,
            idempotency_key=idempotency_key_from(request),
        )
        code = status.HTTP_200_OK if outcome.replayed else status.HTTP_201_CREATED
        return outcome_response(outcome, self._data(outcome.value), key="dispute", status_code=code)

    @action(detail=True, methods=["post"])
    def transition(self, request, pk=None):
        dispute = self.get_object()
        if not can_operate_campaign(request.user, dispute.campaign_id):
            raise PermissionDenied("Only campaign staff or platform admins can move a dispute.")
        serializer = DisputeTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        outcome = retry_on_conflict(
            lambda: workflow.transition_dispute(
                dispute,
                data["status"],
                data["resolution"],
                data["refunded_amount"],
                actor=request.user,
                request=request,
                idempotency_key=idempotency_key_from(request),
            ),
            refresh=dispute.refresh_from_db,
        )
        return outcome_response(outcome, self._data(outcome.value), key="dispute")

    @action(detail=True, methods=["post"])
    def messages(self, request, pk=None):
        dispute = self.get_object()
        serializer = DisputeMessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        outcome = workflow.post_message(dispute, request.user, serializer.validated_data["content"], request=request)
        return outcome_response(
            outcome,
            DisputeMessageSerializer(outcome.value).data,
            key="message",
            status_code=status.HTTP_201_CREATED,
        )
