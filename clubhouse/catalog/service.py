"""
Résolution des jours de club couverts par une sélection (dates explicites ou semaine complète).
"""
from datetime import date
from typing import Any, Dict, Iterable, List

from clubhouse.catalog import repository as catalog_repo
from clubhouse.bookings.pricing import FULL_WEEK, SINGLE_DAY, MULTI_DAY
from clubhouse.errors import ValidationError

FULL_DAY = "full_day"
MORNING = "morning"
AFTERNOON = "afternoon"
TIME_SLOTS = (MORNING, AFTERNOON, FULL_DAY)

def _as_iso(d: Any) -> str:
    if isinstance(d, date):
        return d.isoformat()
    return str(d)[:10]

def resolve_club_days(club_id: str, option_type: str, selected_dates: Iterable[Any]) -> List[Dict[str, Any]]:
    """
    Retourne les ClubDay (disponibles) correspondant à la sélection, avant paiement.
    - dates explicites: un jour par date, chaque date doit exister et être disponible
    - full_week sans date: tous les jours disponibles du club
    """
    wanted = sorted({_as_iso(d) for d in (selected_dates or [])})

    if option_type == SINGLE_DAY and len(wanted) != 1:
        raise ValidationError("Une option journée exige exactement une date", code="invalid_dates",
                              fields=[{"field": "selected_dates", "message": "exactement une date"}])
    if option_type == MULTI_DAY and not wanted:
        raise ValidationError("Sélectionnez au moins une date", code="invalid_dates",
                              fields=[{"field": "selected_dates", "message": "au moins une date"}])

    available = [d for d in catalog_repo.list_club_days(club_id) if d.get("is_available", True)]

    if option_type == FULL_WEEK and not wanted:
        if not available:
            raise ValidationError("Aucun jour disponible pour ce club", code="invalid_dates")
        return available

    by_date = {_as_iso(d.get("date")): d for d in available}
    missing = [d for d in wanted if d not in by_date]
    if missing:
        raise ValidationError(
            "Dates indisponibles pour ce club",
            code="invalid_dates",
            fields=[{"field": "selected_dates", "message": f"indisponible: {d}"} for d in missing],
        )
    return [by_date[d] for d in wanted]

def match_booked_club_days(club_id: str, option_type: str, selected_dates: Iterable[Any]) -> List[Dict[str, Any]]:
    """
    Variante tolérante (après paiement ou pour restituer des places): ne rejette jamais la sélection.
    Un jour devenu indisponible depuis la réservation reste dû au parent.
    """
    wanted = {_as_iso(d) for d in (selected_dates or [])}
    days = catalog_repo.list_club_days(club_id)
    if not wanted:
        if option_type != FULL_WEEK:
            return []
        return [d for d in days if d.get("is_available", True)]
    return [d for d in days if _as_iso(d.get("date")) in wanted]
