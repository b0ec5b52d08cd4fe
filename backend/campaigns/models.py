from django.conf import settings
from django.db import models
from django.utils import timezone


class Campaign(models.Model):
    """A travel operator (pilgrimage campaign) selling trips on the marketplace."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPENDED = "suspended"
    VERIFICATION_STATUSES = [
        (PENDING, "Pending"),
        (APPROVED, "Approved"),
        (REJECTED, "Rejected"),
        (SUSPENDED, "Suspended"),
    ]

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="owned_campaigns",
    )
    name = models.CharField(max_length=200)
    slug = models.SlugField(unique=True)
    license_number = models.CharField(max_length=80, blank=True)
    contact_phone = models.CharField(max_length=30, blank=True)
    contact_email = models.EmailField(blank=True)
    verification_status = models.CharField(max_length=12, choices=VERIFICATION_STATUSES, default=PENDING)
    is_active = models.BooleanField(default=True)
    allows_status_override = models.BooleanField(
        default=False,
        help_text="Staff may move unpaid bookings into operational statuses (audited).",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class CampaignMembership(models.Model):
    MANAGER = "manager"
    OPERATOR = "operator"
    VIEWER = "viewer"
    ROLES = [
        (MANAGER, "Manager"),
        (OPERATOR, "Operator"),
        (VIEWER, "Viewer"),
    ]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="campaign_memberships")
    campaign = models.ForeignKey(Campaign, on_delete=models.CASCADE, related_name="memberships")
    role = models.CharField(max_length=20, choices=ROLES)
    is_active = models.BooleanField(default=True)
    added_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="campaign_memberships_added",
    )
    added_at = models.DateTimeField(default=timezone.now)

    class Meta:
        unique_together = ("user", "campaign")

    def __str__(self):
        return f"{self.user} @ {self.campaign} ({self.role})"
