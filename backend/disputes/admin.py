from django.contrib import admin

from .models import Dispute, DisputeMessage


class DisputeMessageInline(admin.TabularInline):
    model = DisputeMessage
    extra = 0
    readonly_fields = ("sender", "sender_role", "content", "created_at")


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "campaign", "dispute_type", "disputed_amount", "refunded_amount", "status")
    list_filter = ("status", "dispute_type")
    search_fields = ("subject", "booking__id", "filed_by__email")
    readonly_fields = ("status", "refunded_amount", "resolved_by", "resolved_at", "version")
    inlines = [DisputeMessageInline]
