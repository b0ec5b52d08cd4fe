import decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


def money_field():
    return models.DecimalField(decimal_places=3, default=decimal.Decimal("0.000"), max_digits=12)


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("campaigns", "0001_initial"),
        ("trips", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "passenger_count",
                    models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)]),
                ),
                ("unit_price", money_field()),
                ("subtotal", money_field()),
                ("discount", money_field()),
                ("total", money_field()),
                ("paid", money_field()),
                ("remaining", money_field()),
                ("refunded_amount", money_field()),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending_payment", "Pending payment"),
                            ("confirmed", "Confirmed"),
                            ("partially_paid", "Partially paid"),
                            ("fully_paid", "Fully paid"),
                            ("checked_in", "Checked in"),
                            ("in_transit", "In transit"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                            ("refunded", "Refunded"),
                        ],
                        default="pending_payment",
                        max_length=20,
                    ),
                ),
                (
                    "operational_status",
                    models.CharField(
                        blank=True,
                        choices=[("checked_in", "Checked in"), ("in_transit", "In transit"), ("completed", "Completed")],
                        max_length=20,
                    ),
                ),
                ("capacity_released", models.BooleanField(default=False)),
                ("version", models.PositiveIntegerField(default=0)),
                ("special_requests", models.TextField(blank=True)),
                ("internal_notes", models.TextField(blank=True)),
                ("cancellation_reason", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                (
                    "campaign",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="campaigns.campaign",
                    ),
                ),
                (
                    "traveler",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "trip",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="trips.trip",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["campaign", "status"], name="booking_campaign_status_idx"),
                    models.Index(fields=["trip", "status"], name="booking_trip_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("subtotal__gte", 0),
                            ("discount__gte", 0),
                            ("total__gte", 0),
                            ("paid__gte", 0),
                            ("remaining__gte", 0),
                        ),
                        name="booking_amounts_non_negative",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Installment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sequence", models.PositiveIntegerField()),
                ("due_date", models.DateField()),
                ("amount", models.DecimalField(decimal_places=3, max_digits=12)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("paid", "Paid"), ("waived", "Waived")],
                        default="pending",
                        max_length=10,
                    ),
                ),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="installments",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "ordering": ["booking", "sequence"],
                "unique_together": {("booking", "sequence")},
            },
        ),
    ]
