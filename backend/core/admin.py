from django.contrib import admin

from .models import IdempotencyRecord


@admin.register(IdempotencyRecord)
class IdempotencyRecordAdmin(admin.ModelAdmin):
    list_display = ("key", "operation", "entity_type", "entity_id", "created_at")
    search_fields = ("key",)
    list_filter = ("operation",)
