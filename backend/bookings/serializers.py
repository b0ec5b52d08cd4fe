from rest_framework import serializers

from bookings import lifecycle
from bookings.models import Booking
from bookings.services.schedule import schedule_view
from core.money import ZERO
from payments.models import Payment
from trips.models import Trip

MONEY = dict(max_digits=12, decimal_places=3)


class InstallmentViewSerializer(serializers.Serializer):
    index = serializers.IntegerField()
    due_date = serializers.DateField()
    amount = serializers.DecimalField(**MONEY)
    status = serializers.CharField()
    paid_at = serializers.DateTimeField(allow_null=True)


class BookingSerializer(serializers.ModelSerializer):
    trip_title = serializers.CharField(source="trip.title", read_only=True)
    campaign_name = serializers.CharField(source="campaign.name", read_only=True)
    traveler_name = serializers.CharField(source="traveler.label", read_only=True)
    installments = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "traveler",
            "traveler_name",
            "campaign",
            "campaign_name",
            "trip",
            "trip_title",
            "passenger_count",
            "unit_price",
            "subtotal",
            "discount",
            "total",
            "paid",
            "remaining",
            "refunded_amount",
            "status",
            "operational_status",
            "version",
            "special_requests",
            "cancellation_reason",
            "installments",
            "created_at",
            "updated_at",
            "confirmed_at",
            "cancelled_at",
            "refunded_at",
        ]
        read_only_fields = fields

    def get_installments(self, obj):
        return InstallmentViewSerializer(schedule_view(obj), many=True).data


class StaffBookingSerializer(BookingSerializer):
    class Meta(BookingSerializer.Meta):
        fields = BookingSerializer.Meta.fields + ["internal_notes", "capacity_released"]
        read_only_fields = fields


class BookingCreateSerializer(serializers.Serializer):
    trip = serializers.PrimaryKeyRelatedField(queryset=Trip.objects.select_related("campaign"))
    passenger_count = serializers.IntegerField()
    discount = serializers.DecimalField(required=False, default=ZERO, **MONEY)
    special_requests = serializers.CharField(required=False, allow_blank=True, default="")


class PaymentCommandSerializer(serializers.Serializer):
    amount = serializers.DecimalField(**MONEY)
    method = serializers.ChoiceField(choices=Payment.METHODS, default=Payment.KNET)
    gateway_reference = serializers.CharField(required=False, allow_blank=True, default="")


class AdvanceCommandSerializer(serializers.Serializer):
    target = serializers.ChoiceField(choices=sorted(lifecycle.ADVANCE_TARGETS))
    override = serializers.BooleanField(required=False, default=False)


class CancelCommandSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    refund_amount = serializers.DecimalField(required=False, allow_null=True, default=None, **MONEY)
    refund_method = serializers.ChoiceField(choices=Payment.METHODS, default=Payment.KNET)


class RefundCommandSerializer(serializers.Serializer):
    amount = serializers.DecimalField(**MONEY)
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    refund_method = serializers.ChoiceField(choices=Payment.METHODS, default=Payment.KNET)


class InstallmentInputSerializer(serializers.Serializer):
    due_date = serializers.DateField()
    amount = serializers.DecimalField(**MONEY)


class ScheduleCommandSerializer(serializers.Serializer):
    installments = InstallmentInputSerializer(many=True, allow_empty=False)


class InstallmentPaymentSerializer(serializers.Serializer):
    paid_at = serializers.DateTimeField(required=False, allow_null=True, default=None)
    method = serializers.ChoiceField(choices=Payment.METHODS, default=Payment.KNET)
    gateway_reference = serializers.CharField(required=False, allow_blank=True, default="")
