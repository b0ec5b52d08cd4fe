from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import User
from bookings.services import ledger
from campaigns.models import Campaign, CampaignMembership
from trips.models import Trip


@pytest.fixture
def owner(db):
    return User.objects.create_user(
        username="owner@alnoor.test",
        email="owner@alnoor.test",
        password="password123",
        display_name="Noor Owner",
        role=User.CAMPAIGN_OWNER,
    )


@pytest.fixture
def campaign(db, owner):
    return Campaign.objects.create(
        owner=owner,
        name="Al Noor Campaign",
        slug="al-noor",
        verification_status=Campaign.APPROVED,
    )


@pytest.fixture
def operator(db, campaign):
    user = User.objects.create_user(
        username="operator@alnoor.test",
        email="operator@alnoor.test",
        password="password123",
        display_name="Omar Operator",
        role=User.CAMPAIGN_STAFF,
    )
    CampaignMembership.objects.create(user=user, campaign=campaign, role=CampaignMembership.OPERATOR)
    return user


@pytest.fixture
def traveler(db):
    return User.objects.create_user(
        username="fatima@example.test",
        email="fatima@example.test",
        password="password123",
        display_name="Fatima",
    )


@pytest.fixture
def other_traveler(db):
    return User.objects.create_user(
        username="hassan@example.test",
        email="hassan@example.test",
        password="password123",
        display_name="Hassan",
    )


@pytest.fixture
def platform_admin(db):
    return User.objects.create_user(
        username="admin@rahal.test",
        email="admin@rahal.test",
        password="password123",
        role=User.ADMIN,
    )


@pytest.fixture
def trip(db, campaign):
    departure = timezone.now() + timezone.timedelta(days=30)
    return Trip.objects.create(
        campaign=campaign,
        title="Ramadan Umrah",
        trip_type=Trip.UMRAH,
        status=Trip.REGISTRATION_OPEN,
        departure_city="Kuwait City",
        departure_date=departure,
        return_date=departure + timezone.timedelta(days=10),
        base_price=Decimal("100.000"),
        total_capacity=10,
    )


@pytest.fixture
def make_booking(trip, traveler):
    def _make(passengers=1, *, unit_price=None, discount=Decimal("0"), on_trip=None, by=None):
        outcome = ledger.create_booking(
            on_trip or trip,
            by or traveler,
            passengers,
            unit_price=unit_price,
            discount=discount,
        )
        return outcome.value

    return _make


@pytest.fixture
def api_client():
    return APIClient()
