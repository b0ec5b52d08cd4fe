from django.contrib import admin

from .models import Campaign, CampaignMembership


class CampaignMembershipInline(admin.TabularInline):
    model = CampaignMembership
    fk_name = "campaign"
    extra = 0


@admin.register(Campaign)
class CampaignAdmin(admin.ModelAdmin):
    list_display = ("name", "owner", "verification_status", "is_active", "allows_status_override")
    list_filter = ("verification_status", "is_active")
    search_fields = ("name", "slug", "owner__email")
    prepopulated_fields = {"slug": ("name",)}
    inlines = [CampaignMembershipInline]
