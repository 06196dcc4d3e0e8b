# module clubhouse.notifications.service
"""
Notifications best-effort déclenchées après une transition de statut validée.
Chaque fonction journalise et absorbe toute erreur: un email perdu ne doit jamais
annuler une réservation payée ou complétée.
"""
import logging
from typing import Any, Callable, Dict, List

from clubhouse import config
from clubhouse.bookings import repository as bookings_repo
from clubhouse.catalog import repository as catalog_repo
from clubhouse.children import repository as children_repo
from clubhouse.notifications import email

logger = logging.getLogger(__name__)

def run_now(func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    """Planificateur par défaut (hors requête HTTP): exécution immédiate."""
    func(*args, **kwargs)

def _day_labels(booking_id: str) -> List[str]:
    labels = []
    for row in bookings_repo.list_booking_days(booking_id):
        day = (row.get("club_days") or {}).get("date")
        if day:
            labels.append(str(day))
    return sorted(labels)

def _context(booking: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "booking": booking,
        "club": catalog_repo.get_club(booking["club_id"]) or {},
        "option": catalog_repo.get_booking_option(booking["booking_option_id"]),
        "days": _day_labels(booking["id"]),
    }

def send_payment_notifications(booking_id: str) -> None:
    """Confirmation au parent + alerte admin après le passage pending -> paid."""
    try:
        booking = bookings_repo.get_booking(booking_id)
        if not booking:
            logger.warning("notifications.send_payment_notifications booking introuvable booking_id=%s", booking_id)
            return
        ctx = _context(booking)
        club_name = ctx["club"].get("name") or "Holiday club"

        result = email.send_email(
            booking["parent_email"],
            f"Booking Confirmed - {club_name}",
            email.render("booking_confirmation.html", **ctx),
        )
        logger.info("notifications.confirmation booking_id=%s success=%s", booking_id, result.get("success"))

        if config.ADMIN_EMAIL:
            admin_result = email.send_email(
                config.ADMIN_EMAIL,
                f"New Booking: {booking.get('parent_name')} - {club_name}",
                email.render("admin_notification.html", **ctx),
            )
            logger.info("notifications.admin_alert booking_id=%s success=%s", booking_id, admin_result.get("success"))
    except Exception:
        logger.exception("notifications.send_payment_notifications failed booking_id=%s", booking_id)

def send_completion_notification(booking_id: str) -> None:
    try:
        booking = bookings_repo.get_booking(booking_id)
        if not booking:
            logger.warning("notifications.send_completion_notification booking introuvable booking_id=%s", booking_id)
            return
        ctx = _context(booking)
        ctx["children"] = children_repo.list_children(booking_id)
        result = email.send_email(
            booking["parent_email"],
            f"Booking Complete - {ctx['club'].get('name') or 'Holiday club'}",
            email.render("booking_complete.html", **ctx),
        )
        logger.info("notifications.completion booking_id=%s success=%s", booking_id, result.get("success"))
    except Exception:
        logger.exception("notifications.send_completion_notification failed booking_id=%s", booking_id)

def send_incomplete_reminder(booking: Dict[str, Any]) -> bool:
    """Retourne True si l'email est parti (la relance est alors marquée comme envoyée)."""
    try:
        club = catalog_repo.get_club(booking["club_id"]) or {}
        result = email.send_email(
            booking["parent_email"],
            f"Action Required: Complete your booking for {club.get('name') or 'your holiday club'}",
            email.render("incomplete_reminder.html", booking=booking, club=club),
        )
        return bool(result.get("success"))
    except Exception:
        logger.exception("notifications.send_incomplete_reminder failed booking_id=%s", booking.get("id"))
        return False
