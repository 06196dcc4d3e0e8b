"""
Accès au catalogue (clubs, jours de club, options de réservation).
Lecture seule, sauf les compteurs de places décrémentés/restitués via RPC atomiques.
"""
from typing import Any, Dict, List, Optional
import logging

from postgrest.exceptions import APIError

import clubhouse.infra.supabase_client as supabase_client
from clubhouse.errors import PersistenceError

logger = logging.getLogger(__name__)

# module clubhouse.catalog.repository
def get_club(club_id: str) -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("clubs")
            .select("*")
            .eq("id", club_id)
            .limit(1)
            .execute()
        )
        return supabase_client.first_row(res)
    except APIError as e:
        if supabase_client.is_invalid_input(e):
            return None
        logger.exception("catalog.repository.get_club failed club_id=%s", club_id)
        raise PersistenceError("Lecture du club impossible") from e
    except Exception as e:
        logger.exception("catalog.repository.get_club failed club_id=%s", club_id)
        raise PersistenceError("Lecture du club impossible") from e

def get_booking_option(option_id: str) -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("booking_options")
            .select("*")
            .eq("id", option_id)
            .limit(1)
            .execute()
        )
        return supabase_client.first_row(res)
    except APIError as e:
        if supabase_client.is_invalid_input(e):
            return None
        logger.exception("catalog.repository.get_booking_option failed option_id=%s", option_id)
        raise PersistenceError("Lecture de l'option impossible") from e
    except Exception as e:
        logger.exception("catalog.repository.get_booking_option failed option_id=%s", option_id)
        raise PersistenceError("Lecture de l'option impossible") from e

def list_club_days(club_id: str) -> List[Dict[str, Any]]:
    """Jours du club triés par date (disponibles ou non)."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("club_days")
            .select("*")
            .eq("club_id", club_id)
            .order("date")
            .execute()
        )
        return res.data or []
    except Exception as e:
        logger.exception("catalog.repository.list_club_days failed club_id=%s", club_id)
        raise PersistenceError("Lecture des jours du club impossible") from e

def reserve_capacity(club_day_ids: List[str], time_slot: str, seats: int) -> bool:
    """
    Décrément atomique (tout ou rien) des places restantes.
    Retourne False si au moins un jour n'a plus assez de places.
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .rpc("reserve_club_day_capacity", {
                "p_club_day_ids": [str(i) for i in club_day_ids],
                "p_time_slot": time_slot,
                "p_seats": int(seats),
            })
            .execute()
        )
        return _rpc_bool(res)
    except Exception as e:
        logger.exception("catalog.repository.reserve_capacity failed ids=%s slot=%s", club_day_ids, time_slot)
        raise PersistenceError("Réservation des places impossible") from e

def release_capacity(club_day_ids: List[str], time_slot: str, seats: int) -> None:
    try:
        (
            supabase_client.get_service_supabase()
            .rpc("release_club_day_capacity", {
                "p_club_day_ids": [str(i) for i in club_day_ids],
                "p_time_slot": time_slot,
                "p_seats": int(seats),
            })
            .execute()
        )
    except Exception as e:
        logger.exception("catalog.repository.release_capacity failed ids=%s slot=%s", club_day_ids, time_slot)
        raise PersistenceError("Restitution des places impossible") from e

def _rpc_bool(res) -> bool:
    data = getattr(res, "data", None)
    if isinstance(data, list):
        data = data[0] if data else False
    if isinstance(data, dict):
        data = next(iter(data.values()), False)
    return bool(data)
