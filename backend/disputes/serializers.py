from rest_framework import serializers

from bookings.models import Booking
from core.money import ZERO
from disputes.models import Dispute, DisputeMessage

MONEY = dict(max_digits=12, decimal_places=3)


class DisputeMessageSerializer(serializers.ModelSerializer):
    sender_name = serializers.CharField(source="sender.label", read_only=True)

    class Meta:
        model = DisputeMessage
        fields = ["id", "sender", "sender_name", "sender_role", "content", "created_at"]
        read_only_fields = fields


class DisputeSerializer(serializers.ModelSerializer):
    messages = DisputeMessageSerializer(many=True, read_only=True)

    class Meta:
        model = Dispute
        fields = [
            "id",
            "booking",
            "trip",
            "campaign",
            "filed_by",
            "filed_by_role",
            "dispute_type",
            "subject",
            "description",
            "disputed_amount",
            "refunded_amount",
            "status",
            "resolution",
            "resolved_by",
            "resolved_at",
            "version",
            "messages",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class DisputeOpenSerializer(serializers.Serializer):
    booking = serializers.PrimaryKeyRelatedField(queryset=Booking.objects.all())
    dispute_type = serializers.ChoiceField(choices=Dispute.TYPES, default=Dispute.OTHER)
    subject = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    disputed_amount = serializers.DecimalField(required=False, default=ZERO, **MONEY)


class DisputeTransitionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Dispute.STATUSES)
    resolution = serializers.CharField(required=False, allow_blank=True, default="")
    refunded_amount = serializers.DecimalField(required=False, default=ZERO, **MONEY)


class DisputeMessageCreateSerializer(serializers.Serializer):
    content = serializers.CharField()
