"""
Sérialisation/désérialisation des métadonnées Stripe d'une réservation.
Les métadonnées suffisent à reconstruire la réservation si la ligne locale a disparu.
"""
import json
from typing import Any, Dict, List, Optional

# module clubhouse.payments.metadata
def build_checkout_metadata(booking: Dict[str, Any], club: Dict[str, Any]) -> Dict[str, str]:
    """
    Stripe n'accepte que des chaînes (500 caractères max par valeur).
    Les dates sont sérialisées en JSON.
    """
    return {
        "booking_id": str(booking["id"]),
        "club_id": str(booking["club_id"]),
        "club_slug": str(club.get("slug") or ""),
        "option_id": str(booking["booking_option_id"]),
        "selected_dates": json.dumps(list(booking.get("selected_dates") or [])),
        "parent_name": str(booking.get("parent_name") or ""),
        "parent_email": str(booking.get("parent_email") or ""),
        "parent_phone": str(booking.get("parent_phone") or ""),
        "num_children": str(booking.get("num_children") or 0),
        "promo_code_id": str(booking.get("promo_code_id") or ""),
        "subtotal_amount": str(booking.get("subtotal_amount") or 0),
        "discount_amount": str(booking.get("discount_amount") or 0),
        "total_amount": str(booking.get("total_amount") or 0),
        "fingerprint": str(booking.get("fingerprint") or ""),
    }

def booking_id_from_session(session: Dict[str, Any]) -> Optional[str]:
    meta = (session or {}).get("metadata") or {}
    return meta.get("booking_id") or (session or {}).get("client_reference_id") or None

def selected_dates_from_metadata(meta: Dict[str, Any]) -> List[str]:
    """Tolérant aux erreurs: retourne [] si le JSON est illisible."""
    raw = (meta or {}).get("selected_dates")
    try:
        dates = json.loads(raw) if raw else []
    except (TypeError, ValueError):
        return []
    return [str(d) for d in dates] if isinstance(dates, list) else []

def booking_from_session(session: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Reconstruit la ligne 'bookings' (statut pending) à partir d'une session Checkout.
    Retourne None si les métadonnées sont incomplètes.
    """
    meta = (session or {}).get("metadata") or {}
    booking_id = booking_id_from_session(session)
    required = ("club_id", "option_id", "parent_email", "num_children", "total_amount")
    if not booking_id or any(not meta.get(k) for k in required):
        return None
    return {
        "id": booking_id,
        "club_id": meta["club_id"],
        "booking_option_id": meta["option_id"],
        "selected_dates": selected_dates_from_metadata(meta),
        "parent_name": meta.get("parent_name") or "",
        "parent_email": meta["parent_email"],
        "parent_phone": meta.get("parent_phone") or "",
        "num_children": int(meta["num_children"]),
        "promo_code_id": meta.get("promo_code_id") or None,
        "subtotal_amount": int(meta.get("subtotal_amount") or meta["total_amount"]),
        "discount_amount": int(meta.get("discount_amount") or 0),
        "total_amount": int(meta["total_amount"]),
        # Pas d'empreinte: la contrainte d'unicité ne doit pas bloquer une restauration
        "fingerprint": None,
        "status": "pending",
        "stripe_checkout_session_id": session.get("id"),
    }
