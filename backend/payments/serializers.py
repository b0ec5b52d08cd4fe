from rest_framework import serializers

from payments.models import Payment, Payout


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            "id",
            "booking",
            "installment",
            "amount",
            "currency",
            "direction",
            "method",
            "status",
            "gateway_reference",
            "created_at",
        ]
        read_only_fields = fields


class PayoutSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payout
        fields = [
            "id",
            "campaign",
            "amount",
            "platform_fee",
            "net_amount",
            "fee_rate",
            "status",
            "period_start",
            "period_end",
            "booking_ids",
            "bank_name",
            "iban",
            "account_holder",
            "processed_by",
            "processed_at",
            "created_at",
        ]
        read_only_fields = fields


class PayoutCreateSerializer(serializers.Serializer):
    period_start = serializers.DateTimeField()
    period_end = serializers.DateTimeField()
    bank_name = serializers.CharField(required=False, allow_blank=True, default="")
    iban = serializers.CharField(required=False, allow_blank=True, default="", max_length=34)
    account_holder = serializers.CharField(required=False, allow_blank=True, default="")


class PayoutProcessSerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=[Payout.PROCESSING, Payout.COMPLETED, Payout.FAILED],
        default=Payout.COMPLETED,
    )
