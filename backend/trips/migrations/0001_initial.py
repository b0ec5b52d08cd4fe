import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("campaigns", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Trip",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=200)),
                (
                    "trip_type",
                    models.CharField(
                        choices=[("hajj", "Hajj"), ("umrah", "Umrah"), ("ziyarat", "Ziyarat"), ("combined", "Combined")],
                        default="ziyarat",
                        max_length=12,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("draft", "Draft"),
                            ("published", "Published"),
                            ("registration_open", "Registration open"),
                            ("registration_closed", "Registration closed"),
                            ("in_progress", "In progress"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="draft",
                        max_length=20,
                    ),
                ),
                ("departure_city", models.CharField(blank=True, max_length=120)),
                ("departure_date", models.DateTimeField()),
                ("return_date", models.DateTimeField()),
                ("registration_deadline", models.DateTimeField(blank=True, null=True)),
                ("base_price", models.DecimalField(decimal_places=3, max_digits=12)),
                ("total_capacity", models.PositiveIntegerField()),
                ("booked_count", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "campaign",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="trips",
                        to="campaigns.campaign",
                    ),
                ),
            ],
            options={
                "ordering": ["departure_date", "id"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("booked_count__lte", models.F("total_capacity"))),
                        name="trip_booked_within_capacity",
                    )
                ],
            },
        ),
    ]
