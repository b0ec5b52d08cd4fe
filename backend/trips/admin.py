from django.contrib import admin

from .models import Trip


@admin.register(Trip)
class TripAdmin(admin.ModelAdmin):
    list_display = ("title", "campaign", "trip_type", "status", "departure_date", "total_capacity", "booked_count")
    list_filter = ("trip_type", "status", "campaign")
    search_fields = ("title", "departure_city")
    readonly_fields = ("booked_count",)
