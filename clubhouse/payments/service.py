# module clubhouse.payments.service
"""
Rapprochement des paiements Stripe avec les réservations.

Le webhook et la vérification manuelle appellent la même fonction idempotente
confirm_payment(); aucun des deux appelants n'est traité à part.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from clubhouse import config
from clubhouse.bookings import repository as bookings_repo
from clubhouse.bookings import service as bookings_service
from clubhouse.bookings.models import COMPLETE, PAID, PENDING
from clubhouse.catalog import repository as catalog_repo
from clubhouse.catalog import service as catalog_service
from clubhouse.errors import BookingError, InvalidStateError, NotFoundError, StateConflictError
from clubhouse.notifications import service as notifications
from clubhouse.payments import metadata as payments_metadata
from clubhouse.payments import stripe_client

logger = logging.getLogger(__name__)

ALREADY_PAID = "already_paid"
VERIFIED = "verified"
UNPAID = "unpaid"

PAID_STATUSES = ("paid", "no_payment_required")
CONFIRMING_EVENTS = ("checkout.session.completed", "checkout.session.async_payment_succeeded")

Scheduler = Callable[..., Any]

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def materialize_booking_days(booking: Dict[str, Any]) -> int:
    """
    Crée une ligne booking_days par jour réservé (upsert idempotent).
    - dates explicites: les ClubDay correspondants
    - full_week sans date: tous les jours disponibles du club
    """
    option = catalog_repo.get_booking_option(booking["booking_option_id"]) or {}
    time_slot = option.get("time_slot") or "full_day"
    days = catalog_service.match_booked_club_days(
        booking["club_id"], option.get("option_type") or "full_week", booking.get("selected_dates")
    )
    rows = [{"booking_id": booking["id"], "club_day_id": d["id"], "time_slot": time_slot} for d in days]
    bookings_repo.insert_booking_days(rows)
    return len(rows)

def confirm_payment(
    booking_id: str,
    session: Optional[Dict[str, Any]] = None,
    schedule: Optional[Scheduler] = None,
) -> Tuple[str, Dict[str, Any]]:
    """
    Transition idempotente pending -> paid.
    Retourne ("already_paid" | "verified" | "unpaid", payload).
    - already_paid: rien n'est modifié (webhook rejoué, ou course perdue)
    - unpaid: la session n'est pas encore payée, payload["checkout_url"] permet de reprendre
    - verified: statut passé à paid, jours matérialisés, notifications planifiées
    """
    schedule = schedule or notifications.run_now
    booking = bookings_repo.get_booking(booking_id)
    if not booking:
        raise NotFoundError("Réservation introuvable", code="booking_not_found")
    if booking.get("status") in (PAID, COMPLETE):
        return ALREADY_PAID, {"booking_id": booking_id, "booking_status": booking["status"]}
    if booking.get("status") != PENDING:
        raise InvalidStateError(f"Réservation {booking.get('status')}: paiement non applicable", code="invalid_state")

    stored_session_id = booking.get("stripe_checkout_session_id")
    if session is None:
        if not stored_session_id:
            raise StateConflictError("Aucune session de paiement pour cette réservation", code="missing_checkout_session")
        session = stripe_client.get_session(stored_session_id)
    elif stored_session_id and session.get("id") and session["id"] != stored_session_id:
        raise StateConflictError("Session de paiement inattendue pour cette réservation", code="session_mismatch")

    if session.get("payment_status") not in PAID_STATUSES:
        return UNPAID, {"booking_id": booking_id, "checkout_url": session.get("url")}

    # Jours d'abord: une reprise après crash entre ces deux étapes reste sans doublon
    days_count = materialize_booking_days(booking)
    updated = bookings_repo.transition_status(booking_id, PENDING, PAID, {
        "stripe_payment_intent_id": session.get("payment_intent"),
        "stripe_checkout_session_id": stored_session_id or session.get("id"),
        "paid_at": _now_iso(),
    })
    if not updated:
        current = bookings_repo.get_booking(booking_id) or {}
        if current.get("status") in (PAID, COMPLETE):
            return ALREADY_PAID, {"booking_id": booking_id, "booking_status": current["status"]}
        raise InvalidStateError(f"Réservation {current.get('status')}: paiement non applicable", code="invalid_state")

    logger.info("payments.service.confirmed booking_id=%s days=%s", booking_id, days_count)
    schedule(notifications.send_payment_notifications, booking_id)
    return VERIFIED, {"booking_id": booking_id, "booking_status": PAID, "days": days_count}

def restore_booking_from_metadata(session: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Recrée une réservation disparue à partir des métadonnées de la session (webhook)."""
    row = payments_metadata.booking_from_session(session)
    if not row:
        return None
    logger.warning("payments.service.restore booking_id=%s session_id=%s", row["id"], session.get("id"))
    return bookings_repo.insert_booking(row) or bookings_repo.get_booking(row["id"])

def expire_booking(booking_id: str) -> bool:
    booking = bookings_repo.get_booking(booking_id)
    if not booking or booking.get("status") != PENDING:
        return False
    return bookings_service.cancel_pending_booking(booking, reason="expired")

def handle_event(event: Dict[str, Any], schedule: Optional[Scheduler] = None) -> Dict[str, Any]:
    """
    Traite un événement Stripe déjà authentifié.
    Retour: {"status": "ok" | "already_paid" | "unpaid" | "expired" | "ignored", ...}
    """
    event_type = (event or {}).get("type")
    session = ((event or {}).get("data") or {}).get("object") or {}
    booking_id = payments_metadata.booking_id_from_session(session)

    if event_type not in CONFIRMING_EVENTS and event_type != "checkout.session.expired":
        return {"status": "ignored", "type": event_type}
    if not booking_id:
        logger.error("payments.service.handle_event sans booking_id type=%s session_id=%s", event_type, session.get("id"))
        return {"status": "ignored", "type": event_type}

    if event_type == "checkout.session.expired":
        expired = expire_booking(booking_id)
        return {"status": "expired" if expired else "ignored", "booking_id": booking_id}

    if not bookings_repo.get_booking(booking_id):
        if not restore_booking_from_metadata(session):
            logger.error("payments.service.handle_event réservation introuvable booking_id=%s", booking_id)
            return {"status": "ignored", "booking_id": booking_id}

    status, payload = confirm_payment(booking_id, session=session, schedule=schedule)
    return {"status": "ok" if status == VERIFIED else status, **payload}

def sweep_pending_bookings(now: Optional[datetime] = None, limit: Optional[int] = None) -> Dict[str, int]:
    """
    Balaye les réservations pending plus anciennes que BOOKING_HOLD_MINUTES:
    - session payée: confirm_payment (webhook perdu)
    - session ouverte: expirée chez Stripe puis réservation annulée
    - session expirée ou absente: réservation annulée
    """
    now = now or datetime.now(timezone.utc)
    cutoff = (now - timedelta(minutes=config.BOOKING_HOLD_MINUTES)).isoformat()
    summary = {"confirmed": 0, "expired": 0, "errors": 0}

    for booking in bookings_repo.list_pending_created_before(cutoff, limit or config.SWEEP_BATCH_SIZE):
        try:
            session_id = booking.get("stripe_checkout_session_id")
            if session_id:
                session = stripe_client.get_session(session_id)
                if session.get("payment_status") in PAID_STATUSES:
                    status, _ = confirm_payment(booking["id"], session=session)
                    if status == VERIFIED:
                        summary["confirmed"] += 1
                    continue
                if session.get("status") == "open":
                    stripe_client.expire_session(session_id)
            if bookings_service.cancel_pending_booking(booking, reason="expired"):
                summary["expired"] += 1
        except BookingError:
            # Une réservation en échec (Stripe, base, état) n'interrompt pas le lot
            logger.exception("payments.service.sweep failed booking_id=%s", booking.get("id"))
            summary["errors"] += 1

    logger.info("payments.service.sweep done %s", summary)
    return summary
