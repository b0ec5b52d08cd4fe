from rest_framework import serializers

from .models import Trip


class TripSerializer(serializers.ModelSerializer):
    campaign_name = serializers.CharField(source="campaign.name", read_only=True)
    remaining_capacity = serializers.IntegerField(read_only=True)

    class Meta:
        model = Trip
        fields = [
            "id",
            "campaign",
            "campaign_name",
            "title",
            "trip_type",
            "status",
            "departure_city",
            "departure_date",
            "return_date",
            "registration_deadline",
            "base_price",
            "total_capacity",
            "booked_count",
            "remaining_capacity",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["booked_count", "created_at", "updated_at"]

    def validate_base_price(self, value):
        if value < 0:
            raise serializers.ValidationError("Price cannot be negative.")
        return value

    def validate(self, attrs):
        departure = attrs.get("departure_date", getattr(self.instance, "departure_date", None))
        return_date = attrs.get("return_date", getattr(self.instance, "return_date", None))
        if departure and return_date and return_date <= departure:
            raise serializers.ValidationError({"return_date": "Return date must be after the departure date."})
        capacity = attrs.get("total_capacity")
        if self.instance is not None and capacity is not None and capacity < self.instance.booked_count:
            raise serializers.ValidationError(
                {"total_capacity": f"{self.instance.booked_count} seats are already booked."}
            )
        if self.instance is not None and "campaign" in attrs and attrs["campaign"] != self.instance.campaign:
            raise serializers.ValidationError({"campaign": "A trip cannot move to another campaign."})
        return attrs

    def update(self, instance, validated_data):
        # booked_count is owned by the capacity ledger; never write it back.
        for field, value in validated_data.items():
            setattr(instance, field, value)
        instance.save(update_fields=[*validated_data, "updated_at"])
        return instance
