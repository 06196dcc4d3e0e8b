# module clubhouse.children.models
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class ChildRecord(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    date_of_birth: date
    allergies: Optional[str] = None
    medical_notes: Optional[str] = None
    emergency_contact_name: str = Field(min_length=1)
    emergency_contact_phone: str = Field(min_length=5)
    emergency_contact_relationship: Optional[str] = None
    emergency_contact_2_name: Optional[str] = None
    emergency_contact_2_phone: Optional[str] = None
    emergency_contact_2_relationship: Optional[str] = None
    pickup_person_1_name: Optional[str] = None
    pickup_person_1_phone: Optional[str] = None
    pickup_person_1_relationship: Optional[str] = None
    pickup_person_2_name: Optional[str] = None
    pickup_person_2_phone: Optional[str] = None
    pickup_person_2_relationship: Optional[str] = None
    pickup_person_3_name: Optional[str] = None
    pickup_person_3_phone: Optional[str] = None
    pickup_person_3_relationship: Optional[str] = None
    photo_consent: bool = False
    activity_consent: bool
    medical_consent: bool
    farm_animal_consent: bool = False
    woodland_consent: bool = False
    parent_notes: Optional[str] = None

    @field_validator("name", "emergency_contact_name", "emergency_contact_phone")
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("champ requis")
        return v

    @field_validator("activity_consent", "medical_consent")
    def consent_required(cls, v: bool) -> bool:
        # Sans ces deux consentements l'enfant ne peut pas être accueilli
        if not v:
            raise ValueError("consentement requis")
        return v

    def to_row(self, booking_id: str, position: int) -> Dict[str, Any]:
        row = self.model_dump()
        row["date_of_birth"] = self.date_of_birth.isoformat()
        row["booking_id"] = booking_id
        row["position"] = position
        return row


class ChildrenSubmission(BaseModel):
    booking_id: str = Field(min_length=1)
    children: List[ChildRecord] = Field(min_length=1)
