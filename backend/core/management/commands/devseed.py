from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone

from accounts.models import User
from bookings.models import Booking
from bookings.services import ledger, schedule
from campaigns.models import Campaign, CampaignMembership
from trips.models import Trip


SEED_PASSWORD = "Rahal123!"
SUPERUSER_EMAIL = "admin@rahal.test"
SUPERUSER_PASSWORD = "AdminRahal123!"


class Command(BaseCommand):
    help = "Populate the local development database with sample campaigns, trips and bookings."

    def handle(self, *args, **options):
        if not settings.DEBUG:
            raise CommandError("Refusing to seed data while DEBUG is False.")

        with transaction.atomic():
            self.stdout.write(self.style.MIGRATE_HEADING("Creating users"))
            owner = self._ensure_user(
                email="owner@alnoor.test",
                display_name="Noor Owner",
                role=User.CAMPAIGN_OWNER,
            )
            operator = self._ensure_user(
                email="operator@alnoor.test",
                display_name="Omar Operator",
                role=User.CAMPAIGN_STAFF,
            )
            travelers = [
                self._ensure_user(email="fatima@example.test", display_name="Fatima"),
                self._ensure_user(email="hassan@example.test", display_name="Hassan"),
                self._ensure_user(email="maryam@example.test", display_name="Maryam"),
            ]
            self._ensure_superuser()

            self.stdout.write(self.style.MIGRATE_HEADING("Creating campaign"))
            campaign, _ = Campaign.objects.get_or_create(
                slug="al-noor",
                defaults={
                    "name": "Al Noor Campaign",
                    "owner": owner,
                    "license_number": "KW-2024-118",
                    "contact_email": "hello@alnoor.test",
                    "verification_status": Campaign.APPROVED,
                },
            )
            self._ensure_membership(operator, campaign, CampaignMembership.OPERATOR)

            self.stdout.write(self.style.MIGRATE_HEADING("Checking existing bookings"))
            if Booking.objects.filter(campaign=campaign).exists():
                self.stdout.write(self.style.WARNING("Campaign already has bookings; skipping booking seed."))
                self.stdout.write(self.style.SUCCESS("Development seed data is in place."))
                return

            now = timezone.now()
            umrah = self._create_trip(
                campaign=campaign,
                title="Ramadan Umrah",
                trip_type=Trip.UMRAH,
                departure=now + timedelta(days=45),
                nights=10,
                price=Decimal("450.000"),
                capacity=40,
            )
            ziyarat = self._create_trip(
                campaign=campaign,
                title="Arbaeen Ziyarat",
                trip_type=Trip.ZIYARAT,
                departure=now + timedelta(days=90),
                nights=7,
                price=Decimal("300.000"),
                capacity=10,
            )

            self.stdout.write(self.style.MIGRATE_HEADING("Creating bookings"))
            paid = ledger.create_booking(umrah, travelers[0], 2, actor=travelers[0]).value
            ledger.record_payment(paid, paid.total, method="knet", actor=travelers[0])

            installments = ledger.create_booking(ziyarat, travelers[1], 1, discount=Decimal("15.000"), actor=operator).value
            schedule.schedule_installments(
                installments,
                [
                    {"due_date": (now + timedelta(days=7)).date(), "amount": Decimal("135.000")},
                    {"due_date": (now + timedelta(days=30)).date(), "amount": Decimal("150.000")},
                ],
                actor=operator,
            )
            schedule.mark_installment_paid(installments, 0, method="cash", actor=operator)

            pending = ledger.create_booking(ziyarat, travelers[2], 3, actor=travelers[2]).value
            ledger.confirm_booking(pending, actor=operator)

        self.stdout.write(self.style.SUCCESS("Development seed data created."))
        self.stdout.write(self.style.NOTICE(f"Sample login accounts use password: {SEED_PASSWORD}"))
        self.stdout.write(self.style.NOTICE(f"Admin superuser {SUPERUSER_EMAIL} password: {SUPERUSER_PASSWORD}"))

    def _ensure_user(self, *, email: str, display_name: str, role: str = User.TRAVELER) -> User:
        user, created = User.objects.get_or_create(
            email=email,
            defaults={"username": email, "display_name": display_name, "role": role},
        )
        if created:
            user.set_password(SEED_PASSWORD)
            user.save(update_fields=["password"])
            self.stdout.write(self.style.NOTICE(f"Created {email} ({role})"))
        return user

    def _ensure_membership(self, user: User, campaign: Campaign, role: str) -> CampaignMembership:
        membership, created = CampaignMembership.objects.get_or_create(
            user=user,
            campaign=campaign,
            defaults={"role": role, "is_active": True},
        )
        if not membership.is_active:
            membership.is_active = True
            membership.save(update_fields=["is_active"])
        if created:
            self.stdout.write(self.style.NOTICE(f"Added {user.email} as {role} for {campaign.name}"))
        return membership

    def _create_trip(self, *, campaign, title, trip_type, departure, nights, price, capacity) -> Trip:
        return Trip.objects.create(
            campaign=campaign,
            title=title,
            trip_type=trip_type,
            status=Trip.REGISTRATION_OPEN,
            departure_city="Kuwait City",
            departure_date=departure,
            return_date=departure + timedelta(days=nights),
            registration_deadline=departure - timedelta(days=7),
            base_price=price,
            total_capacity=capacity,
        )

    def _ensure_superuser(self) -> User:
        user, created = User.objects.get_or_create(
            email=SUPERUSER_EMAIL,
            defaults={
                "username": SUPERUSER_EMAIL,
                "display_name": "Platform Admin",
                "role": User.SUPER_ADMIN,
                "is_staff": True,
                "is_superuser": True,
            },
        )
        if created or not user.has_usable_password():
            user.set_password(SUPERUSER_PASSWORD)
            user.save(update_fields=["password"])
        return user
