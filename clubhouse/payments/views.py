import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from clubhouse.errors import ExternalGatewayError, NotFoundError, PersistenceError, StateConflictError
from clubhouse.payments import stripe_client
from clubhouse.payments import service as payments_service
from clubhouse.utils.rate_limit import optional_rate_limit

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])


class VerifyPaymentRequest(BaseModel):
    booking_id: str = Field(min_length=1)


# module clubhouse.payments.views
@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request, background_tasks: BackgroundTasks):
    """
    Webhook Stripe (Checkout).
    - Signature: vérifiée par stripe_client.parse_event avant toute lecture (400 sinon)
    - checkout.session.completed / async_payment_succeeded: confirm_payment
    - checkout.session.expired: annulation de la réservation et restitution des places
    - 200 dès que l'événement est traité ou déjà traité (pas de tempête de retries)
    - 500 sur erreur Stripe/base: Stripe réessaiera, le traitement est idempotent
    """
    event = await stripe_client.parse_event(request)
    try:
        # Supabase, Stripe et httpx sont synchrones: hors de la boucle d'événements
        result = await run_in_threadpool(payments_service.handle_event, event, schedule=background_tasks.add_task)
    except (StateConflictError, NotFoundError) as e:
        logger.error("payments.webhook ignored type=%s code=%s detail=%s", event.get("type"), e.code, e.message)
        return {"received": True, "status": "ignored", "code": e.code}
    except (ExternalGatewayError, PersistenceError) as e:
        logger.exception("payments.webhook retryable failure type=%s", event.get("type"))
        return JSONResponse(status_code=500, content={"detail": e.message, "code": e.code})
    logger.info("payments.webhook type=%s result=%s", event.get("type"), result.get("status"))
    return {"received": True, **result}

@router.post("/verify", dependencies=[Depends(optional_rate_limit(times=20, seconds=60))])
def verify_payment(body: VerifyPaymentRequest, background_tasks: BackgroundTasks):
    """
    Vérification manuelle (sans webhook, ex: en local): interroge Stripe pour la session de la réservation.
    Réponse: {"status": "already_paid" | "verified" | "unpaid", "checkout_url"?: ...}
    """
    status, payload = payments_service.confirm_payment(body.booking_id, schedule=background_tasks.add_task)
    return {"status": status, **payload}
