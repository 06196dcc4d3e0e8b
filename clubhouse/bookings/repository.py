"""
Accès aux données pour la feature 'bookings' (tables bookings et booking_days).
Toute écriture de statut passe par transition_status (mise à jour conditionnelle).
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from postgrest.exceptions import APIError

import clubhouse.infra.supabase_client as supabase_client
from clubhouse.bookings.models import ensure_transition
from clubhouse.errors import PersistenceError

logger = logging.getLogger(__name__)

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

# module clubhouse.bookings.repository
def insert_booking(row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Insère une réservation 'pending'.
    Retourne None si l'empreinte est déjà prise par une autre réservation pending (23505).
    """
    try:
        res = supabase_client.get_service_supabase().table("bookings").insert(row).execute()
        return supabase_client.first_row(res) or row
    except APIError as e:
        if supabase_client.is_unique_violation(e):
            logger.info("bookings.repository.insert_booking duplicate fingerprint=%s", row.get("fingerprint"))
            return None
        logger.exception("bookings.repository.insert_booking failed")
        raise PersistenceError("Création de la réservation impossible") from e
    except Exception as e:
        logger.exception("bookings.repository.insert_booking failed")
        raise PersistenceError("Création de la réservation impossible") from e

def get_booking(booking_id: str) -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("bookings")
            .select("*")
            .eq("id", booking_id)
            .limit(1)
            .execute()
        )
        return supabase_client.first_row(res)
    except APIError as e:
        if supabase_client.is_invalid_input(e):
            return None
        logger.exception("bookings.repository.get_booking failed booking_id=%s", booking_id)
        raise PersistenceError("Lecture de la réservation impossible") from e
    except Exception as e:
        logger.exception("bookings.repository.get_booking failed booking_id=%s", booking_id)
        raise PersistenceError("Lecture de la réservation impossible") from e

def find_pending_by_fingerprint(fingerprint: str) -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("bookings")
            .select("*")
            .eq("fingerprint", fingerprint)
            .eq("status", "pending")
            .limit(1)
            .execute()
        )
        return supabase_client.first_row(res)
    except Exception as e:
        logger.exception("bookings.repository.find_pending_by_fingerprint failed")
        raise PersistenceError("Lecture de la réservation impossible") from e

def set_checkout_session(booking_id: str, session_id: str) -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("bookings")
            .update({"stripe_checkout_session_id": session_id, "updated_at": _now_iso()})
            .eq("id", booking_id)
            .execute()
        )
        return supabase_client.first_row(res)
    except Exception as e:
        logger.exception("bookings.repository.set_checkout_session failed booking_id=%s", booking_id)
        raise PersistenceError("Enregistrement de la session de paiement impossible") from e

def transition_status(
    booking_id: str,
    from_status: str,
    to_status: str,
    extra: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    """
    UPDATE bookings SET status=to_status WHERE id=? AND status=from_status.
    Retourne la ligne mise à jour, ou None si un autre appel a déjà changé le statut.
    """
    ensure_transition(from_status, to_status)
    payload = dict(extra or {})
    payload["status"] = to_status
    payload["updated_at"] = _now_iso()
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("bookings")
            .update(payload)
            .eq("id", booking_id)
            .eq("status", from_status)
            .execute()
        )
        return supabase_client.first_row(res)
    except Exception as e:
        logger.exception(
            "bookings.repository.transition_status failed booking_id=%s %s->%s", booking_id, from_status, to_status
        )
        raise PersistenceError("Mise à jour du statut impossible") from e

def mark_reminder_sent(booking_id: str) -> None:
    try:
        (
            supabase_client.get_service_supabase()
            .table("bookings")
            .update({"reminder_sent_at": _now_iso()})
            .eq("id", booking_id)
            .execute()
        )
    except Exception as e:
        logger.exception("bookings.repository.mark_reminder_sent failed booking_id=%s", booking_id)
        raise PersistenceError("Mise à jour de la relance impossible") from e

def list_pending_created_before(cutoff_iso: str, limit: int = 50) -> List[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("bookings")
            .select("*")
            .eq("status", "pending")
            .lt("created_at", cutoff_iso)
            .order("created_at")
            .limit(limit)
            .execute()
        )
        return res.data or []
    except Exception as e:
        logger.exception("bookings.repository.list_pending_created_before failed")
        raise PersistenceError("Lecture des réservations en attente impossible") from e

def list_paid_awaiting_children(cutoff_iso: str, limit: int = 50) -> List[Dict[str, Any]]:
    """Réservations payées avant cutoff, sans fiches enfants ni relance envoyée."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("bookings")
            .select("*")
            .eq("status", "paid")
            .lt("paid_at", cutoff_iso)
            .is_("reminder_sent_at", "null")
            .order("paid_at")
            .limit(limit)
            .execute()
        )
        return res.data or []
    except Exception as e:
        logger.exception("bookings.repository.list_paid_awaiting_children failed")
        raise PersistenceError("Lecture des réservations payées impossible") from e

def insert_booking_days(rows: List[Dict[str, Any]]) -> None:
    """
    Upsert idempotent sur (booking_id, club_day_id): les doublons sont ignorés,
    deux confirmations concurrentes produisent un seul jeu de lignes.
    """
    if not rows:
        return
    try:
        (
            supabase_client.get_service_supabase()
            .table("booking_days")
            .upsert(rows, on_conflict="booking_id,club_day_id", ignore_duplicates=True)
            .execute()
        )
    except Exception as e:
        logger.exception("bookings.repository.insert_booking_days failed booking_id=%s", rows[0].get("booking_id"))
        raise PersistenceError("Création des jours de réservation impossible") from e

def list_booking_days(booking_id: str) -> List[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("booking_days")
            .select("id, booking_id, club_day_id, time_slot, club_days(date)")
            .eq("booking_id", booking_id)
            .execute()
        )
        return res.data or []
    except Exception as e:
        logger.exception("bookings.repository.list_booking_days failed booking_id=%s", booking_id)
        raise PersistenceError("Lecture des jours de réservation impossible") from e
