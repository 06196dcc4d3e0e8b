from unittest.mock import MagicMock

import pytest
from postgrest.exceptions import APIError

from tests.helpers import checkout_payload, child_payload

@pytest.fixture
def uuid_rejecting_db(monkeypatch):
    # Repositories réels; PostgREST refuse tout identifiant qui n'est pas un uuid
    client = MagicMock()
    query = MagicMock()
    client.table.return_value = query
    for name in ("select", "eq", "limit", "order"):
        getattr(query, name).return_value = query
    query.execute.side_effect = APIError(
        {"message": 'invalid input syntax for type uuid: "nope"', "code": "22P02", "details": None, "hint": None}
    )
    monkeypatch.setattr("clubhouse.infra.supabase_client.get_service_supabase", lambda: client)
    return client

def test_checkout_with_malformed_club_id_is_404(client, uuid_rejecting_db):
    r = client.post("/api/v1/checkout", json=checkout_payload(club_id="nope"))
    assert r.status_code == 404
    assert r.json()["code"] == "club_not_found"

def test_booking_summary_with_malformed_id_is_404(client, uuid_rejecting_db):
    r = client.get("/api/v1/bookings/nope")
    assert r.status_code == 404
    assert r.json()["code"] == "booking_not_found"

def test_verify_with_malformed_id_is_404(client, uuid_rejecting_db):
    r = client.post("/api/v1/payments/verify", json={"booking_id": "nope"})
    assert r.status_code == 404

def test_children_with_malformed_id_is_404(client, uuid_rejecting_db):
    r = client.post("/api/v1/children", json={"booking_id": "nope", "children": [child_payload()]})
    assert r.status_code == 404
    assert r.json()["code"] == "booking_not_found"
