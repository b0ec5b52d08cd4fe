from django.conf import settings
from django.db import models


class AuditAction:
    """Closed set of actions the ledger records. Produced by the services, never parsed."""

    BOOKING_CREATE = "booking.create"
    BOOKING_PAYMENT = "booking.payment"
    BOOKING_CONFIRM = "booking.confirm"
    BOOKING_ADVANCE = "booking.advance"
    BOOKING_ADVANCE_OVERRIDE = "booking.advance_override"
    BOOKING_CANCEL = "booking.cancel"
    BOOKING_REFUND = "booking.refund"
    BOOKING_REFUND_ADJUST = "booking.refund_adjust"
    BOOKING_SCHEDULE = "booking.schedule"
    BOOKING_INSTALLMENT_PAID = "booking.installment_paid"
    TRIP_RESERVE = "trip.reserve"
    TRIP_RELEASE = "trip.release"
    DISPUTE_OPEN = "dispute.open"
    DISPUTE_TRANSITION = "dispute.transition"
    DISPUTE_RESOLVE = "dispute.resolve"
    DISPUTE_MESSAGE = "dispute.message"
    PAYOUT_CREATE = "payout.create"
    PAYOUT_PROCESS = "payout.process"

    CHOICES = [
        (BOOKING_CREATE, "Booking created"),
        (BOOKING_PAYMENT, "Payment recorded"),
        (BOOKING_CONFIRM, "Booking confirmed"),
        (BOOKING_ADVANCE, "Booking advanced"),
        (BOOKING_ADVANCE_OVERRIDE, "Booking advanced with override"),
        (BOOKING_CANCEL, "Booking cancelled"),
        (BOOKING_REFUND, "Booking refunded"),
        (BOOKING_REFUND_ADJUST, "Refund adjustment"),
        (BOOKING_SCHEDULE, "Payment schedule set"),
        (BOOKING_INSTALLMENT_PAID, "Installment paid"),
        (TRIP_RESERVE, "Seats reserved"),
        (TRIP_RELEASE, "Seats released"),
        (DISPUTE_OPEN, "Dispute opened"),
        (DISPUTE_TRANSITION, "Dispute status changed"),
        (DISPUTE_RESOLVE, "Dispute resolved"),
        (DISPUTE_MESSAGE, "Dispute message posted"),
        (PAYOUT_CREATE, "Payout created"),
        (PAYOUT_PROCESS, "Payout processed"),
    ]


class AuditEntryQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise TypeError("Audit entries are append-only.")

    def delete(self):
        raise TypeError("Audit entries are append-only.")


class AuditEntry(models.Model):
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_entries",
    )
    actor_role = models.CharField(max_length=30, blank=True)
    action = models.CharField(max_length=40, choices=AuditAction.CHOICES)
    entity_type = models.CharField(max_length=40)
    entity_id = models.PositiveBigIntegerField()
    changes = models.JSONField(default=list, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=300, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = AuditEntryQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["entity_type", "entity_id"], name="audit_entity_idx"),
        ]
        verbose_name_plural = "audit entries"

    def __str__(self):
        return f"{self.action} {self.entity_type}:{self.entity_id}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise TypeError("Audit entries are append-only.")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise TypeError("Audit entries are append-only.")
