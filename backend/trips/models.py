from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q


class Trip(models.Model):
    HAJJ = "hajj"
    UMRAH = "umrah"
    ZIYARAT = "ziyarat"
    COMBINED = "combined"
    TRIP_TYPES = [
        (HAJJ, "Hajj"),
        (UMRAH, "Umrah"),
        (ZIYARAT, "Ziyarat"),
        (COMBINED, "Combined"),
    ]

    DRAFT = "draft"
    PUBLISHED = "published"
    REGISTRATION_OPEN = "registration_open"
    REGISTRATION_CLOSED = "registration_closed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    STATUSES = [
        (DRAFT, "Draft"),
        (PUBLISHED, "Published"),
        (REGISTRATION_OPEN, "Registration open"),
        (REGISTRATION_CLOSED, "Registration closed"),
        (IN_PROGRESS, "In progress"),
        (COMPLETED, "Completed"),
        (CANCELLED, "Cancelled"),
    ]
    BOOKABLE_STATUSES = {PUBLISHED, REGISTRATION_OPEN}

    campaign = models.ForeignKey("campaigns.Campaign", on_delete=models.CASCADE, related_name="trips")
    title = models.CharField(max_length=200)
    trip_type = models.CharField(max_length=12, choices=TRIP_TYPES, default=ZIYARAT)
    status = models.CharField(max_length=20, choices=STATUSES, default=DRAFT)
    departure_city = models.CharField(max_length=120, blank=True)
    departure_date = models.DateTimeField()
    return_date = models.DateTimeField()
    registration_deadline = models.DateTimeField(null=True, blank=True)
    base_price = models.DecimalField(max_digits=12, decimal_places=3)
    total_capacity = models.PositiveIntegerField()
    booked_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["departure_date", "id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(booked_count__lte=F("total_capacity")),
                name="trip_booked_within_capacity",
            ),
        ]

    def __str__(self):
        return f"{self.title} ({self.get_trip_type_display()})"

    @property
    def remaining_capacity(self) -> int:
        return self.total_capacity - self.booked_count

    def is_bookable(self, now) -> bool:
        if self.status not in self.BOOKABLE_STATUSES:
            return False
        return self.registration_deadline is None or now <= self.registration_deadline

    def clean(self):
        super().clean()
        if self.departure_date and self.return_date and self.return_date <= self.departure_date:
            raise ValidationError({"return_date": "Return date must be after the departure date."})
        if self.base_price is not None and self.base_price < 0:
            raise ValidationError({"base_price": "Price cannot be negative."})
        if self.total_capacity is not None and self.booked_count > self.total_capacity:
            raise ValidationError({"total_capacity": "Capacity cannot drop below seats already booked."})
