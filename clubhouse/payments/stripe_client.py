"""
Adaptateur Stripe: centralise les appels et la configuration Stripe.
Seul module du projet à importer le SDK; toute erreur Stripe devient ExternalGatewayError.
"""
import json
import logging
import stripe
from typing import Any, Dict, List, Optional
from fastapi import Request

from clubhouse import config
from clubhouse.errors import ExternalGatewayError, ValidationError

logger = logging.getLogger(__name__)

# module clubhouse.payments.stripe_client
def require_stripe() -> stripe:
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY.
    - Sans clé, lève ExternalGatewayError plutôt que d'appeler l'API.
    """
    if not config.STRIPE_SECRET_KEY:
        raise ExternalGatewayError("Stripe non configuré (STRIPE_SECRET_KEY manquant)")
    stripe.api_key = config.STRIPE_SECRET_KEY
    return stripe

def _as_dict(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return dict(obj)
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)

def _normalize_session(session: Any) -> Dict[str, Any]:
    data = _as_dict(session)
    data["metadata"] = _as_dict(data.get("metadata"))
    return data

def create_session(
    *,
    line_items: List[Dict[str, Any]],
    success_url: str,
    cancel_url: str,
    metadata: Dict[str, str],
    customer_email: Optional[str] = None,
    client_reference_id: Optional[str] = None,
    expires_at: Optional[int] = None,
    idempotency_key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Crée une session Stripe Checkout (mode paiement).
    - metadata: tout ce qu'il faut pour reconstruire la réservation depuis le webhook
    - idempotency_key: une même réservation ne peut pas ouvrir deux sessions différentes
    Retour: dict session (ex: {"id": "cs_test_...", "url": "https://..."})
    """
    require_stripe()
    params: Dict[str, Any] = {
        "mode": "payment",
        "line_items": line_items,
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": metadata,
        "payment_method_types": ["card"],
    }
    if customer_email:
        params["customer_email"] = customer_email
    if client_reference_id:
        params["client_reference_id"] = client_reference_id
    if expires_at:
        params["expires_at"] = int(expires_at)
    try:
        session = stripe.checkout.Session.create(idempotency_key=idempotency_key, **params)
    except stripe.StripeError as e:
        logger.exception("stripe_client.create_session failed ref=%s", client_reference_id)
        raise ExternalGatewayError("Création de la session de paiement impossible") from e
    return _normalize_session(session)

def get_session(session_id: str) -> Dict[str, Any]:
    """
    Récupère une session Stripe Checkout par son identifiant.
    Retour: dict session incluant "id", "status", "payment_status", "payment_intent", "url", "metadata".
    """
    require_stripe()
    try:
        session = stripe.checkout.Session.retrieve(session_id)
    except stripe.StripeError as e:
        logger.exception("stripe_client.get_session failed session_id=%s", session_id)
        raise ExternalGatewayError("Lecture de la session de paiement impossible") from e
    return _normalize_session(session)

def expire_session(session_id: str) -> Dict[str, Any]:
    """Expire une session encore 'open': plus aucun paiement possible dessus."""
    require_stripe()
    try:
        session = stripe.checkout.Session.expire(session_id)
    except stripe.StripeError as e:
        logger.exception("stripe_client.expire_session failed session_id=%s", session_id)
        raise ExternalGatewayError("Expiration de la session de paiement impossible") from e
    return _normalize_session(session)

async def parse_event(request: Request) -> Dict[str, Any]:
    """
    Parse et valide un événement Stripe signé (webhook).
    - Lit le body brut + en-tête Stripe-Signature
    - Vérifie la signature (STRIPE_WEBHOOK_SECRET) avant toute lecture des métadonnées
    Retour: l'événement sous forme de dict JSON.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        raise ValidationError("Signature Stripe manquante", code="missing_signature")
    if not config.STRIPE_WEBHOOK_SECRET:
        raise ExternalGatewayError("Webhook Stripe non configuré (STRIPE_WEBHOOK_SECRET manquant)")
    try:
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"),
            sig_header,
            config.STRIPE_WEBHOOK_SECRET,
            stripe.Webhook.DEFAULT_TOLERANCE,
        )
        return json.loads(payload)
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.warning("stripe_client.parse_event invalid signature or payload: %s", e)
        raise ValidationError("Signature Stripe invalide", code="invalid_signature") from e
