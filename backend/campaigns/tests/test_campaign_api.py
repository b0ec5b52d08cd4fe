import pytest

from accounts.models import User
from campaigns.models import Campaign, CampaignMembership
from campaigns.permissions import can_operate_campaign, can_view_campaign, managed_campaign_ids


@pytest.mark.django_db
def test_staff_roles_decide_what_a_member_can_do(campaign, owner, operator):
    viewer = User.objects.create_user(username="viewer@alnoor.test", password="password123")
    CampaignMembership.objects.create(user=viewer, campaign=campaign, role=CampaignMembership.VIEWER)

    assert can_operate_campaign(owner, campaign.pk)
    assert can_operate_campaign(operator, campaign.pk)
    assert can_view_campaign(viewer, campaign.pk)
    assert not can_operate_campaign(viewer, campaign.pk)


@pytest.mark.django_db
def test_inactive_membership_grants_nothing(campaign, operator):
    CampaignMembership.objects.filter(user=operator).update(is_active=False)

    assert managed_campaign_ids(operator) == set()
    assert not can_view_campaign(operator, campaign.pk)


@pytest.mark.django_db
def test_campaign_list_is_scoped(api_client, operator, traveler, platform_admin, campaign, owner):
    Campaign.objects.create(owner=owner, name="Second Campaign", slug="second")

    api_client.force_authenticate(user=operator)
    assert [row["slug"] for row in api_client.get("/api/campaigns/").data] == ["al-noor"]

    api_client.force_authenticate(user=traveler)
    assert api_client.get("/api/campaigns/").data == []

    api_client.force_authenticate(user=platform_admin)
    assert len(api_client.get("/api/campaigns/").data) == 2
