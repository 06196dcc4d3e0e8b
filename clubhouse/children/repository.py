"""
Accès aux fiches enfants (table children).
"""
from typing import Any, Dict, List, Optional
import logging

from postgrest.exceptions import APIError

import clubhouse.infra.supabase_client as supabase_client
from clubhouse.errors import PersistenceError

logger = logging.getLogger(__name__)

def count_children(booking_id: str) -> int:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("children")
            .select("id", count="exact")
            .eq("booking_id", booking_id)
            .execute()
        )
        if getattr(res, "count", None) is not None:
            return int(res.count)
        return len(res.data or [])
    except Exception as e:
        logger.exception("children.repository.count_children failed booking_id=%s", booking_id)
        raise PersistenceError("Lecture des fiches enfants impossible") from e

def list_children(booking_id: str) -> List[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("children")
            .select("*")
            .eq("booking_id", booking_id)
            .order("position")
            .execute()
        )
        return res.data or []
    except Exception as e:
        logger.exception("children.repository.list_children failed booking_id=%s", booking_id)
        raise PersistenceError("Lecture des fiches enfants impossible") from e

def insert_children(rows: List[Dict[str, Any]]) -> Optional[List[Dict[str, Any]]]:
    """
    Insertion en une seule requête (un seul INSERT SQL, donc atomique).
    Retourne None si un lot existe déjà pour la réservation (23505 sur booking_id, position).
    """
    try:
        res = supabase_client.get_service_supabase().table("children").insert(rows).execute()
        return res.data or rows
    except APIError as e:
        if supabase_client.is_unique_violation(e):
            logger.info("children.repository.insert_children duplicate booking_id=%s", rows[0].get("booking_id"))
            return None
        logger.exception("children.repository.insert_children failed booking_id=%s", rows[0].get("booking_id"))
        raise PersistenceError("Enregistrement des fiches enfants impossible") from e
    except Exception as e:
        logger.exception("children.repository.insert_children failed booking_id=%s", rows[0].get("booking_id"))
        raise PersistenceError("Enregistrement des fiches enfants impossible") from e
