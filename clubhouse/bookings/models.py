# module clubhouse.bookings.models
"""
Statuts de réservation, transitions autorisées et schémas d'entrée HTTP.
"""
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from clubhouse.errors import InvalidStateError

PENDING = "pending"
PAID = "paid"
COMPLETE = "complete"
CANCELLED = "cancelled"

# pending -> paid -> complete, pending -> cancelled. Aucun retour arrière.
ALLOWED_TRANSITIONS = {
    PENDING: {PAID, CANCELLED},
    PAID: {COMPLETE},
    COMPLETE: set(),
    CANCELLED: set(),
}

def ensure_transition(current: Optional[str], target: str) -> None:
    if target not in ALLOWED_TRANSITIONS.get(current or "", set()):
        raise InvalidStateError(
            f"Transition interdite: {current} -> {target}",
            code="invalid_state",
        )


class ParentDetails(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    phone: str = Field(min_length=5, max_length=40)

    @field_validator("name", "phone")
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("champ requis")
        return v


class BookingSelection(BaseModel):
    club_id: str = Field(min_length=1)
    booking_option_id: str = Field(min_length=1)
    selected_dates: List[date] = Field(default_factory=list)
    num_children: int = Field(ge=1, le=20)

    @field_validator("selected_dates")
    def unique_sorted_dates(cls, v: List[date]) -> List[date]:
        return sorted(set(v))


class CheckoutRequest(BookingSelection):
    parent: ParentDetails
    promo_code_id: Optional[str] = None
    promo_code: Optional[str] = None


class QuoteRequest(BookingSelection):
    promo_code: Optional[str] = None
