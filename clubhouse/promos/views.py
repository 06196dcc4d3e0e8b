from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from clubhouse.promos import service as promos_service
from clubhouse.utils.rate_limit import optional_rate_limit

router = APIRouter(prefix="/api/v1/promo-codes", tags=["Promo codes API"])


class PromoValidationRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    club_id: Optional[str] = None


@router.post("/validate", dependencies=[Depends(optional_rate_limit(times=20, seconds=60))])
def validate_promo_code(body: PromoValidationRequest):
    """
    Vérification consultative d'un code (aucune écriture).
    Refus: 400 avec code promo_not_found | promo_inactive | promo_out_of_window |
    promo_usage_exhausted | promo_club_mismatch.
    """
    promo = promos_service.validate_promo_code(body.code, body.club_id)
    return {
        "valid": True,
        "id": promo.get("id"),
        "code": promo.get("code"),
        "discount_percent": promo.get("discount_percent"),
        "description": promo.get("description"),
    }
