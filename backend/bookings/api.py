from django.db.models import Q
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated

from bookings.filters import BookingFilter
from bookings.models import Booking
from bookings.serializers import (
    AdvanceCommandSerializer,
    BookingCreateSerializer,
    BookingSerializer,
    CancelCommandSerializer,
    InstallmentPaymentSerializer,
    PaymentCommandSerializer,
    RefundCommandSerializer,
    ScheduleCommandSerializer,
    StaffBookingSerializer,
)
from bookings.services import ledger, schedule
from campaigns.permissions import can_operate_campaign, can_view_campaign, managed_campaign_ids
from core.api import idempotency_key_from, outcome_response
from core.money import ZERO
from core.retry import retry_on_conflict


class BookingViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Bookings visible to the caller, plus the ledger commands as POST actions.

    Travelers see their own bookings; campaign staff see their campaigns'.
    Every command accepts an ``Idempotency-Key`` header and answers with
    ``{"booking": ..., "warnings": [...], "replayed": bool}``.
    """

    permission_classes = [IsAuthenticated]
    filterset_class = BookingFilter
    ordering_fields = ["created_at", "total", "remaining", "status"]

    def get_queryset(self):
        user = self.request.user
        queryset = Booking.objects.select_related("trip", "campaign", "traveler")
        if self.action == "list":
            queryset = queryset.prefetch_related("installments")
        if user.is_platform_admin:
            return queryset
        return queryset.filter(Q(traveler=user) | Q(campaign_id__in=managed_campaign_ids(user)))

    def get_serializer_class(self):
        user = self.request.user
        if user.is_platform_admin or managed_campaign_ids(user):
            return StaffBookingSerializer
        return BookingSerializer

    def _serialize(self, booking):
        booking = Booking.objects.select_related("trip", "campaign", "traveler").get(pk=booking.pk)
        if can_view_campaign(self.request.user, booking.campaign_id):
            return StaffBookingSerializer(booking).data
        return BookingSerializer(booking).data

    def _require_operator(self, booking):
        if not can_operate_campaign(self.request.user, booking.campaign_id):
            raise PermissionDenied("Only campaign staff can do this.")

    def _require_owner_or_operator(self, booking):
        if booking.traveler_id != self.request.user.pk:
            self._require_operator(booking)

    def _run(self, booking, command, status_code=status.HTTP_200_OK):
        outcome = retry_on_conflict(lambda: command(booking), refresh=booking.refresh_from_db)
        return outcome_response(outcome, self._serialize(outcome.value), key="booking", status_code=status_code)

    def create(self, request, *args, **kwargs):
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        trip = data["trip"]
        if data["discount"] > ZERO and not can_operate_campaign(request.user, trip.campaign_id):
            raise PermissionDenied("Only campaign staff can grant a discount.")
        outcome = ledger.create_booking(
            trip,
            request.user,
            data["passenger_count"],
            discount=data["discount"],
            special_requests=data["special_requests"],
            request=request,
            idempotency_key=idempotency_key_from(request),
        )
        code = status.HTTP_200_OK if outcome.replayed else status.HTTP_201_CREATED
        return outcome_response(outcome, self._serialize(outcome.value), key="booking", status_code=code)

    @action(detail=True, methods=["post"])
    def payments(self, request, pk=None):
        booking = self.get_object()
        self._require_owner_or_operator(booking)
        serializer = PaymentCommandSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        return self._run(
            booking,
            lambda current: ledger.record_payment(
                current,
                data["amount"],
                method=data["method"],
                gateway_reference=data["gateway_reference"],
                actor=request.user,
                request=request,
                idempotency_key=idempotency_key_from(request),
            ),
        )

    @action(detail=True, methods=["post"])
    def confirm(self, request, pk=None):
        booking = self.get_object()
        self._require_operator(booking)
        return self._run(
            booking,
            lambda current: ledger.confirm_booking(
                current,
                actor=request.user,
                request=request,
                idempotency_key=idempotency_key_from(request),
            ),
        )

    @action(detail=True, methods=["post"])
    def advance(self, request, pk=None):
        booking = self.get_object()
        self._require_operator(booking)
        serializer = AdvanceCommandSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        return self._run(
            booking,
            lambda current: ledger.advance_booking(
                current,
                data["target"],
                override=data["override"],
                actor=request.user,
                request=request,
                idempotency_key=idempotency_key_from(request),
            ),
        )

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        booking = self.get_object()
        self._require_owner_or_operator(booking)
        serializer = CancelCommandSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        return self._run(
            booking,
            lambda current: ledger.cancel_booking(
                current,
                data["reason"],
                refund_amount=data["refund_amount"],
                refund_method=data["refund_method"],
                actor=request.user,
                request=request,
                idempotency_key=idempotency_key_from(request),
            ),
        )

    @action(detail=True, methods=["post"])
    def refund(self, request, pk=None):
        booking = self.get_object()
        self._require_operator(booking)
        serializer = RefundCommandSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        return self._run(
            booking,
            lambda current: ledger.refund_booking(
                current,
                data["amount"],
                data["reason"],
                refund_method=data["refund_method"],
                actor=request.user,
                request=request,
                idempotency_key=idempotency_key_from(request),
            ),
        )

    @action(detail=True, methods=["post"])
    def schedule(self, request, pk=None):
        booking = self.get_object()
        self._require_operator(booking)
        serializer = ScheduleCommandSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        installments = serializer.validated_data["installments"]
        return self._run(
            booking,
            lambda current: schedule.schedule_installments(
                current,
                installments,
                actor=request.user,
                request=request,
                idempotency_key=idempotency_key_from(request),
            ),
        )

    @action(detail=True, methods=["post"], url_path=r"installments/(?P<index>\d+)/pay")
    def pay_installment(self, request, pk=None, index=None):
        booking = self.get_object()
        self._require_owner_or_operator(booking)
        serializer = InstallmentPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        return self._run(
            booking,
            lambda current: schedule.mark_installment_paid(
                current,
                int(index),
                paid_at=data["paid_at"],
                method=data["method"],
                gateway_reference=data["gateway_reference"],
                actor=request.user,
                request=request,
                idempotency_key=idempotency_key_from(request),
            ),
        )
