import pytest
from pydantic import ValidationError as PydanticValidationError

from clubhouse.bookings.models import (
    ALLOWED_TRANSITIONS,
    CheckoutRequest,
    ensure_transition,
)
from clubhouse.children.models import ChildRecord
from clubhouse.errors import InvalidStateError
from tests.helpers import checkout_payload, child_payload

@pytest.mark.parametrize("current,target", [
    ("pending", "paid"),
    ("pending", "cancelled"),
    ("paid", "complete"),
])
def test_allowed_transitions(current, target):
    ensure_transition(current, target)

@pytest.mark.parametrize("current,target", [
    ("complete", "paid"),
    ("paid", "pending"),
    ("cancelled", "paid"),
    ("pending", "complete"),
    ("refunded", "paid"),
    (None, "paid"),
])
def test_forbidden_transitions(current, target):
    with pytest.raises(InvalidStateError):
        ensure_transition(current, target)

def test_terminal_statuses_have_no_exit():
    assert ALLOWED_TRANSITIONS["complete"] == set()
    assert ALLOWED_TRANSITIONS["cancelled"] == set()
    # Pas d'état de remboursement: géré dans Stripe, sans effet sur la réservation
    assert set(ALLOWED_TRANSITIONS) == {"pending", "paid", "complete", "cancelled"}

def test_checkout_request_dedupes_and_sorts_dates():
    req = CheckoutRequest(**checkout_payload(selected_dates=["2030-07-24", "2030-07-22", "2030-07-24"]))
    assert [d.isoformat() for d in req.selected_dates] == ["2030-07-22", "2030-07-24"]

@pytest.mark.parametrize("override", [
    {"num_children": 0},
    {"num_children": 21},
    {"parent": {"name": "Jane", "email": "not-an-email", "phone": "07700900000"}},
    {"parent": {"name": "   ", "email": "jane@example.com", "phone": "07700900000"}},
])
def test_checkout_request_rejects_bad_input(override):
    with pytest.raises(PydanticValidationError):
        CheckoutRequest(**checkout_payload(**override))

def test_child_record_requires_consents():
    with pytest.raises(PydanticValidationError):
        ChildRecord(**child_payload(medical_consent=False))
    with pytest.raises(PydanticValidationError):
        ChildRecord(**child_payload(activity_consent=False))

def test_child_record_to_row():
    row = ChildRecord(**child_payload(name="  Sam  ")).to_row("b1", 1)
    assert row["booking_id"] == "b1"
    assert row["position"] == 1
    assert row["name"] == "Sam"
    assert row["date_of_birth"] == "2022-03-14"
    assert row["photo_consent"] is False
