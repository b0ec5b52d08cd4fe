from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.errors import ConcurrentModification
from core.money import ZERO, BookingAmounts

from . import lifecycle

MONEY = dict(max_digits=12, decimal_places=3, default=ZERO)


class Booking(models.Model):
    """One traveler's reservation against one trip."""

    PENDING_PAYMENT = lifecycle.PENDING_PAYMENT
    CONFIRMED = lifecycle.CONFIRMED
    PARTIALLY_PAID = lifecycle.PARTIALLY_PAID
    FULLY_PAID = lifecycle.FULLY_PAID
    CHECKED_IN = lifecycle.CHECKED_IN
    IN_TRANSIT = lifecycle.IN_TRANSIT
    COMPLETED = lifecycle.COMPLETED
    CANCELLED = lifecycle.CANCELLED
    REFUNDED = lifecycle.REFUNDED
    STATUSES = lifecycle.STATUS_CHOICES

    MONEY_FIELDS = ("subtotal", "discount", "total", "paid", "remaining", "refunded_amount")

    traveler = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="bookings")
    campaign = models.ForeignKey("campaigns.Campaign", on_delete=models.PROTECT, related_name="bookings")
    trip = models.ForeignKey("trips.Trip", on_delete=models.PROTECT, related_name="bookings")
    passenger_count = models.PositiveIntegerField(validators=[MinValueValidator(1)])

    unit_price = models.DecimalField(**MONEY)
    subtotal = models.DecimalField(**MONEY)
    discount = models.DecimalField(**MONEY)
    total = models.DecimalField(**MONEY)
    paid = models.DecimalField(**MONEY)
    remaining = models.DecimalField(**MONEY)
    refunded_amount = models.DecimalField(**MONEY)

    status = models.CharField(max_length=20, choices=STATUSES, default=PENDING_PAYMENT)
    operational_status = models.CharField(
        max_length=20,
        choices=lifecycle.OPERATIONAL_CHOICES,
        blank=True,
    )
    capacity_released = models.BooleanField(default=False)
    version = models.PositiveIntegerField(default=0)

    special_requests = models.TextField(blank=True)
    internal_notes = models.TextField(blank=True)
    cancellation_reason = models.TextField(blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["campaign", "status"], name="booking_campaign_status_idx"),
            models.Index(fields=["trip", "status"], name="booking_trip_status_idx"),
        ]
        # Reconciliation (total/paid/remaining) is enforced by BookingAmounts; SQLite
        # compares decimals as floats, so only sign checks live in the database.
        constraints = [
            models.CheckConstraint(
                condition=Q(subtotal__gte=0, discount__gte=0, total__gte=0, paid__gte=0, remaining__gte=0),
                name="booking_amounts_non_negative",
            ),
        ]

    def __str__(self):
        return f"Booking #{self.pk} ({self.status})"

    def delete(self, *args, **kwargs):
        raise TypeError("Bookings are never deleted; cancel or refund them instead.")

    @property
    def amounts(self) -> BookingAmounts:
        return BookingAmounts(
            subtotal=self.subtotal,
            discount=self.discount,
            total=self.total,
            paid=self.paid,
            remaining=self.remaining,
            refunded=self.refunded_amount,
        )

    def set_amounts(self, amounts: BookingAmounts) -> None:
        amounts.validate()
        self.subtotal = amounts.subtotal
        self.discount = amounts.discount
        self.total = amounts.total
        self.paid = amounts.paid
        self.remaining = amounts.remaining
        self.refunded_amount = amounts.refunded

    @property
    def is_confirmed(self) -> bool:
        return self.confirmed_at is not None

    @property
    def is_terminal(self) -> bool:
        return self.status in lifecycle.TERMINAL_STATUSES

    def recompute_status(self) -> str:
        self.status = lifecycle.combine_status(
            confirmed=self.is_confirmed,
            payment=lifecycle.payment_stage(self.amounts),
            operational=self.operational_status or None,
            terminal=self.status if self.is_terminal else None,
        )
        return self.status

    def commit(self, fields) -> None:
        """
        Persist ``fields`` only if nobody else wrote this booking since it was read.

        The row's ``version`` must still equal the one this instance carries;
        otherwise ``ConcurrentModification`` is raised and nothing is written.
        """
        expected = self.version
        now = timezone.now()
        values = {name: getattr(self, name) for name in fields}
        values.update(version=expected + 1, updated_at=now)
        updated = Booking.objects.filter(pk=self.pk, version=expected).update(**values)
        if not updated:
            raise ConcurrentModification(
                "Booking was modified by another request; reload and retry.",
                booking_id=self.pk,
                version=expected,
            )
        self.version = expected + 1
        self.updated_at = now


class Installment(models.Model):
    PENDING = "pending"
    PAID = "paid"
    WAIVED = "waived"
    OVERDUE = "overdue"
    STATUSES = [
        (PENDING, "Pending"),
        (PAID, "Paid"),
        (WAIVED, "Waived"),
    ]

    booking = models.ForeignKey("Booking", on_delete=models.CASCADE, related_name="installments")
    sequence = models.PositiveIntegerField()
    due_date = models.DateField()
    amount = models.DecimalField(max_digits=12, decimal_places=3)
    status = models.CharField(max_length=10, choices=STATUSES, default=PENDING)
    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["booking", "sequence"]
        unique_together = ("booking", "sequence")

    def __str__(self):
        return f"Installment {self.sequence} of booking #{self.booking_id}"

    def display_status(self, now=None) -> str:
        """``overdue`` is derived on read for pending installments past their due date."""
        if self.status == self.PENDING:
            today = timezone.localdate(now) if now is not None else timezone.localdate()
            if self.due_date < today:
                return self.OVERDUE
        return self.status
