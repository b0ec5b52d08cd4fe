from django.conf import settings
from django.db import models

from core.money import ZERO


class Payment(models.Model):
    """One movement of money for a booking: a traveler payment or a refund."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"
    DIRECTIONS = [
        (INBOUND, "Inbound"),
        (OUTBOUND, "Outbound"),
    ]

    KNET = "knet"
    VISA = "visa"
    MASTERCARD = "mastercard"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    METHODS = [
        (KNET, "KNET"),
        (VISA, "Visa"),
        (MASTERCARD, "Mastercard"),
        (CASH, "Cash"),
        (BANK_TRANSFER, "Bank transfer"),
    ]

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    STATUSES = [
        (PENDING, "Pending"),
        (COMPLETED, "Completed"),
        (FAILED, "Failed"),
    ]

    booking = models.ForeignKey("bookings.Booking", on_delete=models.PROTECT, related_name="payments")
    campaign = models.ForeignKey("campaigns.Campaign", on_delete=models.PROTECT, related_name="payments")
    installment = models.ForeignKey(
        "bookings.Installment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
    )
    amount = models.DecimalField(max_digits=12, decimal_places=3)
    currency = models.CharField(max_length=3, default="KWD")
    direction = models.CharField(max_length=10, choices=DIRECTIONS, default=INBOUND)
    method = models.CharField(max_length=20, choices=METHODS, default=KNET)
    status = models.CharField(max_length=12, choices=STATUSES, default=COMPLETED)
    gateway_reference = models.CharField(max_length=200, blank=True)
    notes = models.TextField(blank=True)
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="recorded_payments",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.get_direction_display()} {self.amount} {self.currency} for booking #{self.booking_id}"


class Payout(models.Model):
    """Settlement of a campaign's collected money for a period, net of the platform fee."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    STATUSES = [
        (PENDING, "Pending"),
        (PROCESSING, "Processing"),
        (COMPLETED, "Completed"),
        (FAILED, "Failed"),
    ]
    TRANSITIONS = {
        PENDING: {PROCESSING, COMPLETED, FAILED},
        PROCESSING: {COMPLETED, FAILED},
        COMPLETED: set(),
        FAILED: set(),
    }

    campaign = models.ForeignKey("campaigns.Campaign", on_delete=models.PROTECT, related_name="payouts")
    amount = models.DecimalField(max_digits=14, decimal_places=3, default=ZERO)
    platform_fee = models.DecimalField(max_digits=14, decimal_places=3, default=ZERO)
    net_amount = models.DecimalField(max_digits=14, decimal_places=3, default=ZERO)
    fee_rate = models.DecimalField(max_digits=6, decimal_places=4)
    status = models.CharField(max_length=12, choices=STATUSES, default=PENDING)
    period_start = models.DateTimeField()
    period_end = models.DateTimeField()
    booking_ids = models.JSONField(default=list, blank=True)
    bank_name = models.CharField(max_length=120, blank=True)
    iban = models.CharField(max_length=34, blank=True)
    account_holder = models.CharField(max_length=120, blank=True)
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="processed_payouts",
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-period_end", "-id"]

    def __str__(self):
        return f"Payout #{self.pk} for {self.campaign} ({self.status})"
