from decimal import Decimal

import pytest
from django.db import DatabaseError
from django.test import RequestFactory

from audit.models import AuditAction, AuditEntry
from audit.services import recorder
from core.errors import AuditWriteFailed


def test_field_changes_lists_only_what_moved():
    before = {"status": "pending_payment", "paid": Decimal("0.000"), "remaining": Decimal("100.000")}
    after = {"status": "partially_paid", "paid": Decimal("40.000"), "remaining": Decimal("100.000")}

    assert recorder.field_changes(before, after) == [
        {"field": "status", "old": "pending_payment", "new": "partially_paid"},
        {"field": "paid", "old": "0.000", "new": "40.000"},
    ]


@pytest.mark.django_db
def test_record_keeps_actor_and_request_details(operator):
    request = RequestFactory().post(
        "/api/bookings/1/confirm/",
        HTTP_X_FORWARDED_FOR="203.0.113.7, 10.0.0.1",
        HTTP_USER_AGENT="RahalApp/2.1",
    )

    warning = recorder.record(
        operator,
        AuditAction.BOOKING_CONFIRM,
        "booking",
        1,
        [{"field": "status", "old": "pending_payment", "new": "confirmed"}],
        request=request,
    )

    assert warning is None
    entry = AuditEntry.objects.get()
    assert entry.actor == operator
    assert entry.actor_role == operator.role
    assert entry.ip_address == "203.0.113.7"
    assert entry.user_agent == "RahalApp/2.1"
    assert entry.changes[0]["new"] == "confirmed"


@pytest.mark.django_db
def test_system_actions_have_no_actor():
    recorder.record(None, AuditAction.TRIP_RELEASE, "trip", 3)

    entry = AuditEntry.objects.get()
    assert entry.actor is None
    assert entry.actor_role == recorder.SYSTEM_ROLE


@pytest.mark.django_db
def test_entries_are_append_only(operator):
    recorder.record(operator, AuditAction.BOOKING_CONFIRM, "booking", 1)
    entry = AuditEntry.objects.get()

    with pytest.raises(TypeError):
        entry.save()
    with pytest.raises(TypeError):
        entry.delete()
    with pytest.raises(TypeError):
        AuditEntry.objects.filter(pk=entry.pk).update(action=AuditAction.BOOKING_CANCEL)
    with pytest.raises(TypeError):
        AuditEntry.objects.all().delete()


@pytest.mark.django_db
def test_failed_write_becomes_a_warning(monkeypatch, operator):
    def broken_create(**kwargs):
        raise DatabaseError("disk full")

    monkeypatch.setattr(AuditEntry.objects, "create", broken_create)

    warning = recorder.record(operator, AuditAction.BOOKING_CONFIRM, "booking", 9)

    assert isinstance(warning, AuditWriteFailed)
    assert warning.as_dict()["entity_id"] == 9
    assert warning.as_dict()["code"] == "audit_write_failed"


@pytest.mark.django_db
def test_audit_feed_is_admin_only(api_client, operator, platform_admin):
    recorder.record(operator, AuditAction.BOOKING_CONFIRM, "booking", 1)
    recorder.record(operator, AuditAction.BOOKING_CANCEL, "booking", 2)

    api_client.force_authenticate(user=operator)
    assert api_client.get("/api/audit-entries/").status_code == 403

    api_client.force_authenticate(user=platform_admin)
    response = api_client.get("/api/audit-entries/", {"entity_id": 2})
    assert response.status_code == 200
    assert [row["action"] for row in response.data] == [AuditAction.BOOKING_CANCEL]
    assert response.data[0]["actor_name"] == "Omar Operator"
