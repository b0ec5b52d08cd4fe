from django.contrib import admin

from .models import Booking, Installment


class InstallmentInline(admin.TabularInline):
    model = Installment
    extra = 0
    can_delete = False
    readonly_fields = ("sequence", "due_date", "amount", "status", "paid_at")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("id", "trip", "traveler", "passenger_count", "total", "paid", "remaining", "status")
    list_filter = ("status", "campaign")
    search_fields = ("trip__title", "traveler__email", "traveler__display_name")
    readonly_fields = (
        "traveler",
        "campaign",
        "trip",
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
        "capacity_released",
        "version",
        "created_at",
        "confirmed_at",
        "cancelled_at",
        "refunded_at",
    )
    inlines = [InstallmentInline]

    def has_add_permission(self, request):
        # Bookings go through the ledger so capacity and audit stay consistent.
        return False

    def has_delete_permission(self, request, obj=None):
        return False
