from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.errors import ConcurrentModification
from core.money import ZERO


class Dispute(models.Model):
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    ESCALATED = "escalated"
    CLOSED = "closed"
    STATUSES = [
        (OPEN, "Open"),
        (UNDER_REVIEW, "Under review"),
        (RESOLVED, "Resolved"),
        (ESCALATED, "Escalated"),
        (CLOSED, "Closed"),
    ]
    TRANSITIONS = {
        OPEN: {UNDER_REVIEW},
        UNDER_REVIEW: {RESOLVED, ESCALATED, CLOSED},
        ESCALATED: {RESOLVED, CLOSED},
        RESOLVED: set(),
        CLOSED: set(),
    }
    TERMINAL_STATUSES = {RESOLVED, CLOSED}

    TRAVELER = "traveler"
    CAMPAIGN_OWNER = "campaign_owner"
    FILED_BY_ROLES = [
        (TRAVELER, "Traveler"),
        (CAMPAIGN_OWNER, "Campaign owner"),
    ]

    REFUND = "refund"
    SERVICE_QUALITY = "service_quality"
    FRAUD = "fraud"
    OTHER = "other"
    TYPES = [
        (REFUND, "Refund"),
        (SERVICE_QUALITY, "Service quality"),
        (FRAUD, "Fraud"),
        (OTHER, "Other"),
    ]

    booking = models.ForeignKey("bookings.Booking", on_delete=models.PROTECT, related_name="disputes")
    trip = models.ForeignKey("trips.Trip", on_delete=models.PROTECT, related_name="disputes")
    campaign = models.ForeignKey("campaigns.Campaign", on_delete=models.PROTECT, related_name="disputes")
    filed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="filed_disputes")
    filed_by_role = models.CharField(max_length=20, choices=FILED_BY_ROLES)
    dispute_type = models.CharField(max_length=20, choices=TYPES, default=OTHER)
    subject = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    disputed_amount = models.DecimalField(max_digits=12, decimal_places=3, default=ZERO)
    refunded_amount = models.DecimalField(max_digits=12, decimal_places=3, default=ZERO)
    status = models.CharField(max_length=20, choices=STATUSES, default=OPEN)
    resolution = models.TextField(blank=True)
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="resolved_disputes",
    )
    resolved_at = models.DateTimeField(null=True, blank=True)
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=["campaign", "status"], name="dispute_campaign_status_idx")]
        constraints = [
            models.CheckConstraint(
                condition=Q(disputed_amount__gte=0, refunded_amount__gte=0),
                name="dispute_amounts_non_negative",
            ),
        ]

    def __str__(self):
        return f"Dispute #{self.pk} on booking #{self.booking_id} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    def commit(self, fields) -> None:
        """Version-guarded write of ``fields``; see ``Booking.commit``."""
        expected = self.version
        now = timezone.now()
        values = {name: getattr(self, name) for name in fields}
        values.update(version=expected + 1, updated_at=now)
        if not Dispute.objects.filter(pk=self.pk, version=expected).update(**values):
            raise ConcurrentModification(
                "Dispute was modified by another request; reload and retry.",
                dispute_id=self.pk,
                version=expected,
            )
        self.version = expected + 1
        self.updated_at = now


class DisputeMessage(models.Model):
    dispute = models.ForeignKey(Dispute, on_delete=models.CASCADE, related_name="messages")
    sender = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="dispute_messages")
    sender_role = models.CharField(max_length=20)
    content = models.TextField()
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"Message on dispute #{self.dispute_id} by {self.sender_role}"
