# module clubhouse.promos.service
"""
Validation des codes promo et gestion atomique de leur utilisation.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from clubhouse.errors import ValidationError
from clubhouse.promos import repository as promos_repo

logger = logging.getLogger(__name__)


class PromoRejection(ValidationError):
    default_code = "promo_rejected"


class PromoNotFound(PromoRejection):
    default_code = "promo_not_found"


class PromoInactive(PromoRejection):
    default_code = "promo_inactive"


class PromoOutOfWindow(PromoRejection):
    default_code = "promo_out_of_window"


class PromoUsageExhausted(PromoRejection):
    default_code = "promo_usage_exhausted"


class PromoClubMismatch(PromoRejection):
    default_code = "promo_club_mismatch"


def _parse_ts(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt

def validate_promo(promo: Optional[Dict[str, Any]], club_id: Optional[str], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Vérifie un code chargé. Ordre: existence, activation, fenêtre de validité, plafond, club.
    Lève une PromoRejection typée, sinon retourne le code.
    """
    if not promo:
        raise PromoNotFound("Code promo invalide")
    if not promo.get("is_active", False):
        raise PromoInactive("Ce code promo n'est plus actif")

    now = now or datetime.now(timezone.utc)
    valid_from = _parse_ts(promo.get("valid_from"))
    valid_until = _parse_ts(promo.get("valid_until"))
    if (valid_from and now < valid_from) or (valid_until and now > valid_until):
        raise PromoOutOfWindow("Ce code promo a expiré ou n'est pas encore valable")

    max_uses = promo.get("max_uses")
    if max_uses is not None and int(promo.get("times_used") or 0) >= int(max_uses):
        raise PromoUsageExhausted("Ce code promo a atteint sa limite d'utilisation")

    scoped_club = promo.get("club_id")
    # Un code rattaché à un club exige ce club: sans club_id, il est refusé
    if scoped_club and str(scoped_club) != str(club_id or ""):
        raise PromoClubMismatch("Ce code promo n'est pas valable pour ce club")
    return promo

def validate_promo_code(code: str, club_id: Optional[str]) -> Dict[str, Any]:
    """Validation consultative (lecture seule), utilisée par l'aperçu de prix et l'endpoint dédié."""
    return validate_promo(promos_repo.get_promo_by_code(code), club_id)

def resolve_promo_for_booking(
    club_id: str,
    promo_code_id: Optional[str] = None,
    promo_code: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Valide puis consomme une utilisation du code (RPC conditionnelle).
    Retourne None si aucun code n'est fourni; lève une PromoRejection sinon.
    """
    if not promo_code_id and not (promo_code or "").strip():
        return None
    if promo_code_id:
        promo = promos_repo.get_promo_by_id(promo_code_id)
    else:
        promo = promos_repo.get_promo_by_code(promo_code or "")
    validate_promo(promo, club_id)

    if not promos_repo.claim_promo_use(promo["id"]):
        # Perdu la course contre une autre réservation sur un code rare
        raise PromoUsageExhausted("Ce code promo a atteint sa limite d'utilisation")
    logger.info("promos.service.claimed promo_id=%s club_id=%s", promo["id"], club_id)
    return promo

def release_promo(promo_id: Optional[str]) -> None:
    if not promo_id:
        return
    promos_repo.release_promo_use(promo_id)
    logger.info("promos.service.released promo_id=%s", promo_id)
