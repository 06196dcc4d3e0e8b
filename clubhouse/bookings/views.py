import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from clubhouse.bookings import calendar as bookings_calendar
from clubhouse.bookings import service as bookings_service
from clubhouse.bookings.models import CheckoutRequest, QuoteRequest
from clubhouse.utils.rate_limit import optional_rate_limit

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["Bookings API"])

# module clubhouse.bookings.views
@router.post("/checkout", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_checkout(body: CheckoutRequest):
    """
    Crée une réservation 'pending' et renvoie l'URL de la session Stripe Checkout.
    - Entrée JSON: club_id, booking_option_id, selected_dates, num_children, parent{name,email,phone},
      promo_code_id ou promo_code (optionnels)
    - Réponses: 200 {url, session_id, booking_id, ...}; 400 champs invalides; 404 club/option;
      409 réservations fermées ou complet; 502 Stripe indisponible
    """
    return bookings_service.create_booking(body)

@router.post("/bookings/quote", dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
def quote(body: QuoteRequest):
    return bookings_service.quote_booking(body)

@router.get("/bookings/{booking_id}")
def get_booking(booking_id: str):
    return bookings_service.get_booking_summary(booking_id)

@router.get("/bookings/{booking_id}/calendar")
def get_booking_calendar(booking_id: str):
    """Fichier .ics des jours réservés (pièce jointe <slug>-<REF>.ics)."""
    filename, content = bookings_calendar.export_booking_calendar(booking_id)
    return Response(
        content=content,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
