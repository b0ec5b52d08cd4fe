from django.contrib import admin

from .models import Payment, Payout


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "direction", "method", "amount", "status", "created_at")
    list_filter = ("direction", "method", "status")
    search_fields = ("booking__id", "gateway_reference")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
    list_display = ("id", "campaign", "period_start", "period_end", "amount", "platform_fee", "net_amount", "status")
    list_filter = ("status",)
    readonly_fields = ("amount", "platform_fee", "net_amount", "fee_rate", "booking_ids", "processed_by", "processed_at")
