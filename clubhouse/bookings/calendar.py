# module clubhouse.bookings.calendar
"""
Export iCalendar (.ics) des jours réservés, pour les agendas des parents.
Lecture seule: repose sur les lignes booking_days créées à la confirmation du paiement.
"""
import re
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Tuple
from zoneinfo import ZoneInfo
import logging

from icalendar import Calendar, Event, vCalAddress, vText

from clubhouse import config
from clubhouse.bookings import repository as bookings_repo
from clubhouse.catalog import repository as catalog_repo
from clubhouse.errors import NotFoundError
from clubhouse.notifications.email import booking_reference

logger = logging.getLogger(__name__)

SESSION_LABELS = {
    "morning": "Morning Session",
    "afternoon": "Afternoon Session",
    "full_day": "Full Day",
}

# Horaires par défaut quand le club n'en a pas renseigné
DEFAULT_TIMES = {
    "morning_start": time(9, 0),
    "morning_end": time(12, 0),
    "afternoon_start": time(13, 0),
    "afternoon_end": time(16, 0),
}

WHAT_TO_BRING = [
    "Packed lunch and water bottle",
    "Weather-appropriate clothing",
    "Wellies or sturdy outdoor shoes",
    "Sun cream and hat (if sunny)",
    "Waterproof jacket",
]

def _club_time(club: Dict[str, Any], field: str) -> time:
    raw = club.get(field)
    if not raw:
        return DEFAULT_TIMES[field]
    if isinstance(raw, time):
        return raw
    return time.fromisoformat(str(raw))

def slot_times(club: Dict[str, Any], time_slot: str) -> Tuple[time, time]:
    if time_slot == "morning":
        return _club_time(club, "morning_start"), _club_time(club, "morning_end")
    if time_slot == "afternoon":
        return _club_time(club, "afternoon_start"), _club_time(club, "afternoon_end")
    return _club_time(club, "morning_start"), _club_time(club, "afternoon_end")

def _format_time(t: time) -> str:
    # 08:30 -> 8:30am
    suffix = "pm" if t.hour >= 12 else "am"
    return f"{t.hour % 12 or 12}:{t.minute:02d}{suffix}"

def _day_date(booked_day: Dict[str, Any]) -> date:
    raw = (booked_day.get("club_days") or {}).get("date")
    return raw if isinstance(raw, date) else date.fromisoformat(str(raw))

def build_booking_calendar(
    booking: Dict[str, Any],
    club: Dict[str, Any],
    booked_days: List[Dict[str, Any]],
) -> bytes:
    """
    Un VEVENT par jour réservé, horaires du club selon le créneau, heure locale CALENDAR_TIMEZONE.
    L'UID est stable (réservation + jour): un nouvel import met à jour au lieu de dupliquer.
    """
    tz = ZoneInfo(config.CALENDAR_TIMEZONE)
    reference = booking_reference(booking["id"])
    club_name = club.get("name") or "The Clubhouse"

    cal = Calendar()
    cal.add("prodid", "-//exploretheclubhouse//calendar//EN")
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")
    cal.add("x-wr-calname", club_name)

    stamp = datetime.now(timezone.utc)
    for booked_day in sorted(booked_days, key=_day_date):
        slot = booked_day.get("time_slot") or "full_day"
        start, end = slot_times(club, slot)
        day = _day_date(booked_day)
        session = SESSION_LABELS.get(slot, SESSION_LABELS["full_day"])

        event = Event()
        event.add("uid", f"{booking['id']}-{booked_day['club_day_id']}@exploretheclubhouse.co.uk")
        event.add("dtstamp", stamp)
        event.add("dtstart", datetime.combine(day, start, tzinfo=tz))
        event.add("dtend", datetime.combine(day, end, tzinfo=tz))
        event.add("summary", f"{club_name} - {session}")
        event.add("description", "\n".join([
            club_name,
            f"{session}: {_format_time(start)} - {_format_time(end)}",
            "",
            "What to bring:",
            *[f"- {item}" for item in WHAT_TO_BRING],
            "",
            f"Booking reference: {reference}",
            "",
            f"Questions? Contact {config.CALENDAR_ORGANIZER_EMAIL}",
        ]))
        event.add("location", config.CALENDAR_LOCATION)
        event.add("status", "CONFIRMED")
        event.add("transp", "OPAQUE")
        event.add("categories", ["Holiday Club", "Children Activities"])
        organizer = vCalAddress(f"mailto:{config.CALENDAR_ORGANIZER_EMAIL}")
        organizer.params["cn"] = vText("The Clubhouse")
        event["organizer"] = organizer
        cal.add_component(event)

    return cal.to_ical()

def calendar_filename(club: Dict[str, Any], booking_id: str) -> str:
    slug = re.sub(r"[^a-z0-9-]", "-", str(club.get("slug") or "booking"), flags=re.IGNORECASE)
    return f"{slug}-{booking_reference(booking_id)}.ics"

def export_booking_calendar(booking_id: str) -> Tuple[str, bytes]:
    """Retourne (nom de fichier, contenu .ics). 404 si la réservation n'a aucun jour réservé."""
    booking = bookings_repo.get_booking(booking_id)
    if not booking:
        raise NotFoundError("Réservation introuvable", code="booking_not_found")
    booked_days = [d for d in bookings_repo.list_booking_days(booking_id) if d.get("club_days")]
    if not booked_days:
        raise NotFoundError("Aucun jour réservé pour cette réservation", code="no_booked_days")
    club = catalog_repo.get_club(booking["club_id"]) or {}
    logger.info("bookings.calendar.export booking_id=%s days=%s", booking_id, len(booked_days))
    return calendar_filename(club, booking["id"]), build_booking_calendar(booking, club, booked_days)
