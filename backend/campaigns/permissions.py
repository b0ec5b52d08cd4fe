from rest_framework.permissions import BasePermission

from .models import Campaign, CampaignMembership

OPERATING_ROLES = {CampaignMembership.MANAGER, CampaignMembership.OPERATOR}


def managed_campaign_ids(user, roles=None):
    """Campaign ids the user owns or staffs (optionally restricted to ``roles``)."""
    memberships = CampaignMembership.objects.filter(user=user, is_active=True)
    if roles is not None:
        memberships = memberships.filter(role__in=roles)
    owned = Campaign.objects.filter(owner=user).values_list("id", flat=True)
    return set(owned) | set(memberships.values_list("campaign_id", flat=True))


def can_operate_campaign(user, campaign_id) -> bool:
    if not user or not user.is_authenticated:
        return False
    if user.is_platform_admin:
        return True
    return campaign_id in managed_campaign_ids(user, roles=OPERATING_ROLES)


def can_view_campaign(user, campaign_id) -> bool:
    if not user or not user.is_authenticated:
        return False
    if user.is_platform_admin:
        return True
    return campaign_id in managed_campaign_ids(user)


class IsCampaignStaff(BasePermission):
    """
    Allow access to owners and active staff of the campaign the view resolved.
    Platform admins automatically pass.
    """

    def has_permission(self, request, view):
        campaign = getattr(view, "campaign", None)
        if campaign is None:
            return False
        return can_view_campaign(request.user, campaign.id)


class IsPlatformAdmin(BasePermission):
    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_platform_admin)
