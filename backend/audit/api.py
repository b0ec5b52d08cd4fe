from django_filters import rest_framework as filters
from rest_framework import serializers, viewsets

from campaigns.permissions import IsPlatformAdmin

from .models import AuditEntry


class AuditEntrySerializer(serializers.ModelSerializer):
    actor_name = serializers.CharField(source="actor.label", read_only=True, default=None)

    class Meta:
        model = AuditEntry
        fields = [
            "id",
            "actor",
            "actor_name",
            "actor_role",
            "action",
            "entity_type",
            "entity_id",
            "changes",
            "created_at",
        ]
        read_only_fields = fields


class AuditEntryFilter(filters.FilterSet):
    since = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")

    class Meta:
        model = AuditEntry
        fields = ["action", "entity_type", "entity_id", "actor"]


class AuditEntryViewSet(viewsets.ReadOnlyModelViewSet):
    """Admin review screen feed; there is no write endpoint."""

    serializer_class = AuditEntrySerializer
    permission_classes = [IsPlatformAdmin]
    filterset_class = AuditEntryFilter
    queryset = AuditEntry.objects.select_related("actor")
