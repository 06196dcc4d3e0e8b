# module clubhouse.children.service
"""
Finalisation d'une réservation payée: enregistrement unique des fiches enfants (paid -> complete).
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from clubhouse import config
from clubhouse.bookings import repository as bookings_repo
from clubhouse.bookings.models import COMPLETE, PAID
from clubhouse.children import repository as children_repo
from clubhouse.children.models import ChildRecord
from clubhouse.errors import (
    AlreadySubmittedError,
    CountMismatchError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
)
from clubhouse.notifications import service as notifications

logger = logging.getLogger(__name__)

def submit_children(
    booking_id: str,
    children: List[ChildRecord],
    schedule: Optional[Callable[..., Any]] = None,
) -> Dict[str, Any]:
    """
    Contrôles dans l'ordre: statut exactement 'paid', nombre d'enfants, absence de fiches existantes.
    Insertion en un seul lot, puis paid -> complete et notification (best-effort).
    """
    schedule = schedule or notifications.run_now
    booking = bookings_repo.get_booking(booking_id)
    if not booking:
        raise NotFoundError("Réservation introuvable", code="booking_not_found")
    if booking.get("status") != PAID:
        raise InvalidStateError(
            f"Réservation {booking.get('status')}: fiches enfants non acceptées",
            code="invalid_state",
        )
    expected = int(booking.get("num_children") or 0)
    if len(children) != expected:
        raise CountMismatchError(
            f"{expected} fiche(s) enfant attendue(s), {len(children)} reçue(s)",
            fields=[{"field": "children", "message": f"attendu: {expected}"}],
        )
    if children_repo.count_children(booking_id) > 0:
        raise AlreadySubmittedError("Les fiches enfants ont déjà été envoyées")

    rows = [child.to_row(booking_id, position) for position, child in enumerate(children)]
    if children_repo.insert_children(rows) is None:
        raise AlreadySubmittedError("Les fiches enfants ont déjà été envoyées")

    updated = bookings_repo.transition_status(
        booking_id, PAID, COMPLETE, {"completed_at": datetime.now(timezone.utc).isoformat()}
    )
    if not updated:
        # Les fiches sont enregistrées mais le statut a changé entre-temps
        logger.error("children.service.submit_children transition perdue booking_id=%s", booking_id)
        raise PersistenceError("Finalisation de la réservation impossible", code="completion_failed")

    logger.info("children.service.completed booking_id=%s children=%s", booking_id, len(rows))
    schedule(notifications.send_completion_notification, booking_id)
    return {
        "booking_id": booking_id,
        "status": COMPLETE,
        "children": len(rows),
        "message": f"Successfully saved information for {len(rows)} child{'ren' if len(rows) != 1 else ''}",
    }

def remind_incomplete_bookings(now: Optional[datetime] = None, limit: Optional[int] = None) -> Dict[str, int]:
    """Relance (une seule fois) les parents payés depuis INCOMPLETE_REMINDER_HOURS sans fiches enfants."""
    now = now or datetime.now(timezone.utc)
    cutoff = (now - timedelta(hours=config.INCOMPLETE_REMINDER_HOURS)).isoformat()
    summary = {"sent": 0, "failed": 0}
    for booking in bookings_repo.list_paid_awaiting_children(cutoff, limit or config.SWEEP_BATCH_SIZE):
        if notifications.send_incomplete_reminder(booking):
            bookings_repo.mark_reminder_sent(booking["id"])
            summary["sent"] += 1
        else:
            summary["failed"] += 1
    logger.info("children.service.reminders done %s", summary)
    return summary
