# module clubhouse.bookings.service
"""
Gestionnaire de réservations: création d'une réservation 'pending' et de sa session Stripe,
aperçu de prix, annulation d'une réservation en attente (restitution des places et du code promo).
"""
import hashlib
import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from clubhouse import config
from clubhouse.bookings import repository as bookings_repo
from clubhouse.bookings.models import CANCELLED, PENDING, CheckoutRequest, QuoteRequest
from clubhouse.bookings.pricing import MULTI_DAY, compute_price
from clubhouse.catalog import repository as catalog_repo
from clubhouse.catalog import service as catalog_service
from clubhouse.children import repository as children_repo
from clubhouse.errors import BookingError, ExternalGatewayError, NotFoundError, StateConflictError
from clubhouse.payments import metadata as payments_metadata
from clubhouse.payments import stripe_client
from clubhouse.promos import service as promos_service

logger = logging.getLogger(__name__)

# Fenêtre pendant laquelle une réservation sans session est considérée en cours de création
IN_FLIGHT_SECONDS = 120

def compute_fingerprint(club_id: str, option_id: str, dates: List[str], num_children: int, parent_email: str) -> str:
    raw = "|".join([
        str(club_id),
        str(option_id),
        ",".join(sorted(dates)),
        str(int(num_children)),
        (parent_email or "").strip().lower(),
    ])
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()

def _load_catalog(club_id: str, option_id: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    club = catalog_repo.get_club(club_id)
    if not club:
        raise NotFoundError("Club introuvable", code="club_not_found")
    option = catalog_repo.get_booking_option(option_id)
    if not option or str(option.get("club_id")) != str(club["id"]) or not option.get("is_active", True):
        raise NotFoundError("Option de réservation introuvable", code="option_not_found")
    if not club.get("is_active", True) or not club.get("bookings_open", True):
        raise StateConflictError("Les réservations sont fermées pour ce club", code="bookings_closed")
    return club, option

def _date_count(option: Dict[str, Any], days: List[Dict[str, Any]]) -> int:
    return len(days) if option["option_type"] == MULTI_DAY else 1

def _parse_ts(value: Any) -> Optional[datetime]:
    if not value:
        return None
    dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)

def quote_booking(req: QuoteRequest) -> Dict[str, Any]:
    """Aperçu de prix en lecture seule (la validation du code promo est consultative)."""
    club, option = _load_catalog(req.club_id, req.booking_option_id)
    days = catalog_service.resolve_club_days(club["id"], option["option_type"], req.selected_dates)

    discount_percent = 0
    promo_error = None
    if (req.promo_code or "").strip():
        try:
            promo = promos_service.validate_promo_code(req.promo_code, club["id"])
            discount_percent = promo.get("discount_percent") or 0
        except promos_service.PromoRejection as e:
            promo_error = e.code

    price = compute_price(option["option_type"], option["price_per_child"], _date_count(option, days),
                          req.num_children, discount_percent)
    return {
        "club_id": club["id"],
        "booking_option_id": option["id"],
        "dates": [str(d.get("date")) for d in days],
        "subtotal_amount": price.subtotal,
        "discount_amount": price.discount_amount,
        "total_amount": price.total,
        "discount_percent": discount_percent,
        "promo_error": promo_error,
        "currency": config.CHECKOUT_CURRENCY,
    }

def _line_description(option: Dict[str, Any], num_children: int, days: List[Dict[str, Any]]) -> str:
    children = f"{num_children} child" if num_children == 1 else f"{num_children} children"
    if option["option_type"] == MULTI_DAY:
        return f"{option.get('name')} - {children} ({len(days)} days)"
    if len(days) == 1:
        return f"{option.get('name')} - {children} - {days[0].get('date')}"
    return f"{option.get('name')} - {children}"

def _checkout_urls(club: Dict[str, Any], booking_id: str) -> Tuple[str, str]:
    slug = club.get("slug") or ""
    success = (
        f"{config.SITE_URL}{config.CHECKOUT_SUCCESS_PATH.format(slug=slug)}"
        f"?session_id={{CHECKOUT_SESSION_ID}}&booking_id={booking_id}"
    )
    cancel = f"{config.SITE_URL}{config.CHECKOUT_CANCEL_PATH.format(slug=slug)}?cancelled=true&booking_id={booking_id}"
    return success, cancel

def _session_expiry() -> int:
    # Stripe impose une expiration entre 30 minutes et 24 heures
    minutes = min(max(config.BOOKING_HOLD_MINUTES, 31), 24 * 60)
    return int(time.time()) + minutes * 60

def _checkout_response(booking: Dict[str, Any], session: Dict[str, Any], promo_error: Optional[str] = None) -> Dict[str, Any]:
    return {
        "booking_id": booking["id"],
        "session_id": session.get("id"),
        "url": session.get("url"),
        "subtotal_amount": booking.get("subtotal_amount"),
        "discount_amount": booking.get("discount_amount") or 0,
        "total_amount": booking.get("total_amount"),
        "promo_applied": bool(booking.get("promo_code_id")),
        "promo_error": promo_error,
    }

def _claim_promo(req: CheckoutRequest, club_id: str) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Politique: un code refusé n'empêche pas la réservation, elle se fait sans remise.
    Retourne (promo consommé ou None, code de refus ou None).
    """
    try:
        promo = promos_service.resolve_promo_for_booking(club_id, req.promo_code_id, req.promo_code)
        return promo, None
    except promos_service.PromoRejection as e:
        logger.info("bookings.service.promo_rejected club_id=%s code=%s", club_id, e.code)
        return None, e.code

def _resume_pending_booking(existing: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Même empreinte qu'une réservation encore pending:
    - session Stripe encore ouverte: on renvoie la même URL (aucun second paiement possible)
    - sinon la réservation précédente est annulée et ses places restituées
    """
    session_id = existing.get("stripe_checkout_session_id")
    if not session_id:
        created = _parse_ts(existing.get("created_at"))
        if created and datetime.now(timezone.utc) - created < timedelta(seconds=IN_FLIGHT_SECONDS):
            raise StateConflictError("Une réservation identique est déjà en cours", code="checkout_in_progress")
        cancel_pending_booking(existing, reason="superseded")
        return None

    session = stripe_client.get_session(session_id)
    if session.get("payment_status") == "paid":
        raise StateConflictError("Cette réservation est déjà payée", code="already_paid")
    if session.get("status") == "open" and session.get("url"):
        logger.info("bookings.service.resume booking_id=%s session_id=%s", existing["id"], session_id)
        return _checkout_response(existing, session)
    cancel_pending_booking(existing, reason="superseded")
    return None

def create_booking(req: CheckoutRequest) -> Dict[str, Any]:
    """
    Crée une réservation 'pending' puis sa session Stripe Checkout.
    Étapes: catalogue, jours, code promo (consommé), prix, insertion, places (RPC atomique),
    session Stripe, enregistrement de l'identifiant de session.
    En cas d'échec après l'insertion: session expirée, réservation annulée, places et code restitués.
    """
    club, option = _load_catalog(req.club_id, req.booking_option_id)
    days = catalog_service.resolve_club_days(club["id"], option["option_type"], req.selected_dates)
    dates = [d.isoformat() for d in req.selected_dates]
    fingerprint = compute_fingerprint(club["id"], option["id"], dates, req.num_children, req.parent.email)

    existing = bookings_repo.find_pending_by_fingerprint(fingerprint)
    if existing:
        resumed = _resume_pending_booking(existing)
        if resumed:
            return resumed

    promo, promo_error = _claim_promo(req, club["id"])
    try:
        price = compute_price(
            option["option_type"],
            option["price_per_child"],
            _date_count(option, days),
            req.num_children,
            (promo or {}).get("discount_percent") or 0,
        )
        row = {
            "id": str(uuid.uuid4()),
            "club_id": club["id"],
            "booking_option_id": option["id"],
            "selected_dates": dates,
            "parent_name": req.parent.name,
            "parent_email": str(req.parent.email),
            "parent_phone": req.parent.phone,
            "num_children": req.num_children,
            "subtotal_amount": price.subtotal,
            "discount_amount": price.discount_amount,
            "total_amount": price.total,
            "promo_code_id": (promo or {}).get("id"),
            "status": PENDING,
            "fingerprint": fingerprint,
        }
        booking = bookings_repo.insert_booking(row)
    except BookingError:
        promos_service.release_promo((promo or {}).get("id"))
        raise

    if booking is None:
        # Course perdue contre une soumission identique
        promos_service.release_promo((promo or {}).get("id"))
        concurrent = bookings_repo.find_pending_by_fingerprint(fingerprint)
        resumed = _resume_pending_booking(concurrent) if concurrent else None
        if resumed:
            return resumed
        raise StateConflictError("Une réservation identique est déjà en cours", code="checkout_in_progress")

    day_ids = [d["id"] for d in days]
    reserved = False
    session: Optional[Dict[str, Any]] = None
    try:
        if not catalog_repo.reserve_capacity(day_ids, option["time_slot"], req.num_children):
            raise StateConflictError("Plus assez de places sur les jours sélectionnés", code="sold_out")
        reserved = True

        success_url, cancel_url = _checkout_urls(club, booking["id"])
        session = stripe_client.create_session(
            line_items=[{
                "price_data": {
                    "currency": config.CHECKOUT_CURRENCY,
                    "unit_amount": int(booking["total_amount"]),
                    "product_data": {
                        "name": f"{club.get('name')} - {option.get('name')}",
                        "description": _line_description(option, req.num_children, days),
                    },
                },
                "quantity": 1,
            }],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=payments_metadata.build_checkout_metadata(booking, club),
            customer_email=booking["parent_email"],
            client_reference_id=booking["id"],
            expires_at=_session_expiry(),
            idempotency_key=f"booking-{booking['id']}",
        )
        bookings_repo.set_checkout_session(booking["id"], session["id"])
    except BookingError:
        _rollback(booking, option, day_ids if reserved else [], session)
        raise

    logger.info(
        "bookings.service.created booking_id=%s session_id=%s total=%s promo=%s",
        booking["id"], session.get("id"), booking["total_amount"], bool(booking.get("promo_code_id")),
    )
    return _checkout_response(booking, session, promo_error)

def _rollback(booking: Dict[str, Any], option: Dict[str, Any], reserved_day_ids: List[str], session: Optional[Dict[str, Any]]) -> None:
    """Compensation best-effort: journalise sans masquer l'erreur d'origine."""
    if session and session.get("id"):
        try:
            stripe_client.expire_session(session["id"])
        except ExternalGatewayError:
            logger.warning("bookings.service.rollback expire_session failed booking_id=%s", booking["id"])
    try:
        bookings_repo.transition_status(booking["id"], PENDING, CANCELLED, {"cancelled_at": _now_iso()})
        if reserved_day_ids:
            catalog_repo.release_capacity(reserved_day_ids, option["time_slot"], booking["num_children"])
        promos_service.release_promo(booking.get("promo_code_id"))
    except BookingError:
        logger.exception("bookings.service.rollback failed booking_id=%s", booking["id"])

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def cancel_pending_booking(booking: Dict[str, Any], reason: str = "expired") -> bool:
    """
    pending -> cancelled (conditionnel). Seul l'appel gagnant restitue places et code promo.
    Retourne False si la réservation n'était plus pending.
    """
    cancelled = bookings_repo.transition_status(booking["id"], PENDING, CANCELLED, {"cancelled_at": _now_iso()})
    if not cancelled:
        return False
    option = catalog_repo.get_booking_option(booking["booking_option_id"])
    if option:
        days = catalog_service.match_booked_club_days(booking["club_id"], option["option_type"], booking.get("selected_dates"))
        if days:
            catalog_repo.release_capacity([d["id"] for d in days], option["time_slot"], booking["num_children"])
    promos_service.release_promo(booking.get("promo_code_id"))
    logger.info("bookings.service.cancelled booking_id=%s reason=%s", booking["id"], reason)
    return True

def get_booking_summary(booking_id: str) -> Dict[str, Any]:
    """Vue publique d'une réservation (page de confirmation): pas de données enfants."""
    booking = bookings_repo.get_booking(booking_id)
    if not booking:
        raise NotFoundError("Réservation introuvable", code="booking_not_found")
    club = catalog_repo.get_club(booking["club_id"]) or {}
    option = catalog_repo.get_booking_option(booking["booking_option_id"]) or {}
    days = bookings_repo.list_booking_days(booking_id)
    return {
        "id": booking["id"],
        "status": booking.get("status"),
        "club": {"id": club.get("id"), "name": club.get("name"), "slug": club.get("slug")},
        "option": {"id": option.get("id"), "name": option.get("name"), "time_slot": option.get("time_slot")},
        "parent_name": booking.get("parent_name"),
        "num_children": booking.get("num_children"),
        "subtotal_amount": booking.get("subtotal_amount"),
        "discount_amount": booking.get("discount_amount") or 0,
        "total_amount": booking.get("total_amount"),
        "days": sorted(str((d.get("club_days") or {}).get("date")) for d in days if d.get("club_days")),
        "children_submitted": children_repo.count_children(booking_id),
    }
