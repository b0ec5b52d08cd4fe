from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    TRAVELER = "traveler"
    CAMPAIGN_OWNER = "campaign_owner"
    CAMPAIGN_STAFF = "campaign_staff"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"
    ROLES = [
        (TRAVELER, "Traveler"),
        (CAMPAIGN_OWNER, "Campaign owner"),
        (CAMPAIGN_STAFF, "Campaign staff"),
        (ADMIN, "Admin"),
        (SUPER_ADMIN, "Super admin"),
    ]

    display_name = models.CharField(max_length=120, blank=True)
    phone = models.CharField(max_length=30, blank=True)
    role = models.CharField(max_length=20, choices=ROLES, default=TRAVELER)

    @property
    def is_platform_admin(self) -> bool:
        return self.is_superuser or self.role in {self.ADMIN, self.SUPER_ADMIN}

    @property
    def label(self) -> str:
        return self.display_name or self.get_full_name() or self.email or self.username
