"""Données de test partagées (payloads HTTP, identifiants du catalogue seedé)."""
from typing import Any, Dict

CLUB_ID = "club-1"
OTHER_CLUB_ID = "club-2"
DATES = ["2030-07-22", "2030-07-23", "2030-07-24", "2030-07-25", "2030-07-26"]

def checkout_payload(**overrides) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "club_id": CLUB_ID,
        "booking_option_id": "multi-morning",
        "selected_dates": DATES[:3],
        "num_children": 2,
        "parent": {"name": "Jane Parent", "email": "jane@example.com", "phone": "07700900000"},
    }
    payload.update(overrides)
    return payload

def child_payload(name: str = "Sam", **overrides) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "name": name,
        "date_of_birth": "2022-03-14",
        "allergies": "Peanuts",
        "emergency_contact_name": "Jane Parent",
        "emergency_contact_phone": "07700900000",
        "activity_consent": True,
        "medical_consent": True,
    }
    payload.update(overrides)
    return payload
