import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="AuditEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("actor_role", models.CharField(blank=True, max_length=30)),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("booking.create", "Booking created"),
                            ("booking.payment", "Payment recorded"),
                            ("booking.confirm", "Booking confirmed"),
                            ("booking.advance", "Booking advanced"),
                            ("booking.advance_override", "Booking advanced with override"),
                            ("booking.cancel", "Booking cancelled"),
                            ("booking.refund", "Booking refunded"),
                            ("booking.refund_adjust", "Refund adjustment"),
                            ("booking.schedule", "Payment schedule set"),
                            ("booking.installment_paid", "Installment paid"),
                            ("trip.reserve", "Seats reserved"),
                            ("trip.release", "Seats released"),
                            ("dispute.open", "Dispute opened"),
                            ("dispute.transition", "Dispute status changed"),
                            ("dispute.resolve", "Dispute resolved"),
                            ("dispute.message", "Dispute message posted"),
                            ("payout.create", "Payout created"),
                            ("payout.process", "Payout processed"),
                        ],
                        max_length=40,
                    ),
                ),
                ("entity_type", models.CharField(max_length=40)),
                ("entity_id", models.PositiveBigIntegerField()),
                ("changes", models.JSONField(blank=True, default=list)),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("user_agent", models.CharField(blank=True, max_length=300)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="audit_entries",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "audit entries",
                "ordering": ["-created_at", "-id"],
                "indexes": [models.Index(fields=["entity_type", "entity_id"], name="audit_entity_idx")],
            },
        ),
    ]
