import logging

import pytest
from django.db import OperationalError

from core import idempotency
from core.api import ledger_exception_handler
from core.db import ledger_transaction
from core.errors import (
    CapacityExceeded,
    ConcurrentModification,
    DependencyUnavailable,
    IdempotencyKeyReused,
    InvalidAmount,
)
from core.events import TransitionEvent, dispatch, ledger_transition
from core.retry import retry_on_conflict


def test_exception_handler_maps_ledger_errors():
    response = ledger_exception_handler(CapacityExceeded("Full.", trip_id=4, requested=3, remaining=1), {})

    assert response.status_code == 409
    assert response.data == {
        "code": "capacity_exceeded",
        "detail": "Full.",
        "trip_id": 4,
        "requested": 3,
        "remaining": 1,
    }
    assert not response.has_header("Retry-After")


def test_exception_handler_marks_retryable_errors():
    response = ledger_exception_handler(ConcurrentModification("Stale."), {})

    assert response.status_code == 409
    assert response["Retry-After"] == "1"


def test_exception_handler_leaves_other_errors_to_drf():
    assert ledger_exception_handler(ValueError("boom"), {}) is None


def test_retry_on_conflict_refreshes_between_attempts(settings):
    settings.LEDGER_CONFLICT_RETRY_ATTEMPTS = 3
    calls, refreshes = [], []

    def operation():
        calls.append(1)
        if len(calls) < 3:
            raise ConcurrentModification("Stale.")
        return "done"

    assert retry_on_conflict(operation, refresh=lambda: refreshes.append(1)) == "done"
    assert len(calls) == 3
    assert len(refreshes) == 2


def test_retry_on_conflict_gives_up(settings):
    settings.LEDGER_CONFLICT_RETRY_ATTEMPTS = 2
    calls = []

    def operation():
        calls.append(1)
        raise ConcurrentModification("Stale.")

    with pytest.raises(ConcurrentModification):
        retry_on_conflict(operation)
    assert len(calls) == 2


def test_retry_on_conflict_does_not_retry_validation_errors():
    calls = []

    def operation():
        calls.append(1)
        raise InvalidAmount("Nope.")

    with pytest.raises(InvalidAmount):
        retry_on_conflict(operation, attempts=3)
    assert len(calls) == 1


@pytest.mark.django_db
def test_idempotency_key_is_bound_to_one_operation():
    key = idempotency.scoped_key("abc", "booking", 7)
    assert key == "booking:7:abc"
    assert idempotency.scoped_key(None, "booking", 7) is None

    idempotency.remember(key, "booking.payment", "payment", 1)

    assert idempotency.lookup(key, "booking.payment").entity_id == 1
    with pytest.raises(IdempotencyKeyReused):
        idempotency.lookup(key, "booking.cancel")


@pytest.mark.django_db
def test_remembering_a_key_twice_is_a_conflict():
    idempotency.remember("k-1", "booking.payment", "payment", 1)

    with pytest.raises(ConcurrentModification):
        idempotency.remember("k-1", "booking.payment", "payment", 2)


@pytest.mark.django_db
def test_ledger_transaction_surfaces_database_outage():
    with pytest.raises(DependencyUnavailable) as excinfo:
        with ledger_transaction(timeout_ms=250):
            raise OperationalError("could not connect")

    assert excinfo.value.retryable
    assert excinfo.value.context["timeout_ms"] == 250


def test_dispatch_logs_failing_receivers(caplog):
    received = []

    def good(sender, event, **kwargs):
        received.append(event)

    def bad(sender, event, **kwargs):
        raise DependencyUnavailable("SMTP down.")

    ledger_transition.connect(good, weak=False)
    ledger_transition.connect(bad, weak=False)
    try:
        event = TransitionEvent("widget", 1, "widget.move", "a", "b")
        with caplog.at_level(logging.ERROR, logger="core.events"):
            responses = dispatch(event)
    finally:
        ledger_transition.disconnect(good)
        ledger_transition.disconnect(bad)

    assert received == [event]
    assert any(isinstance(response, DependencyUnavailable) for _, response in responses)
    assert "widget.move" in caplog.text
