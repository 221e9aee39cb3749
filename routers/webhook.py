from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.config import logger, STRIPE_WEBHOOK_SECRET
from core.database import get_db
from utils.orders import OrderReconciler
from utils.stripe_api import StripeAPI, get_payment_provider
from utils.webhook_events import EventKind, VerificationError, verify

router = APIRouter(prefix="/api", tags=["webhook"])


def get_webhook_secret() -> str:
    return STRIPE_WEBHOOK_SECRET


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    payments: StripeAPI = Depends(get_payment_provider),
    secret: str = Depends(get_webhook_secret),
):
    """
    Stripe webhook receiver.
    - 400 when the signature does not verify (nothing is written)
    - 200 {"received": true} for every verified event, even if the order
      update fails; failures go to the log instead of triggering redelivery
    """
    raw_body = await request.body()
    sig = request.headers.get("stripe-signature")

    try:
        event = verify(raw_body, sig, secret)
    except VerificationError as ex:
        logger.warning(f"[webhook] signature verification failed: {ex}")
        return JSONResponse({"error": f"Webhook Error: {ex}"}, status_code=400)

    if event.kind == EventKind.COMPLETION:
        session_id = event.object_id
        logger.info(f"[webhook] checkout session completed: {session_id}")
        try:
            order = await OrderReconciler(db, payments).reconcile(event.payload)
            logger.info(f"[webhook] order reconciled: session={session_id} order={order.id} status={order.status}")
        except Exception:
            logger.exception(f"[webhook] failed to reconcile order for session {session_id} (event {event.id})")
    elif event.kind == EventKind.PAYMENT_SUCCEEDED:
        logger.info(f"[webhook] payment succeeded: {event.object_id}")
    elif event.kind == EventKind.PAYMENT_FAILED:
        logger.info(f"[webhook] payment failed: {event.object_id}")
    else:
        logger.info(f"[webhook] unhandled event type: {event.type}")

    return {"received": True}
