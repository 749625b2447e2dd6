"""Stripe webhook endpoint.

Only ``checkout.session.completed`` is acted on. Every verified event is
acknowledged with ``{"received": true}``; failures after verification are
logged and show up in the generation status instead of in the response, so
Stripe never enters a redelivery loop.
"""

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request, status

from headshot.api.dependencies import get_generation_executor, get_stripe_gateway, get_uow_factory
from headshot.services.exceptions import AuthenticationError, MalformedEventError
from headshot.services.fulfillment import extract_checkout_details, fulfill_checkout
from headshot.services.image_generation.executor import GenerationExecutor, run_generation
from headshot.services.payments.stripe_gateway import CHECKOUT_COMPLETED, StripeGateway

logger = structlog.get_logger()
router = APIRouter(prefix="/api/stripe", tags=["stripe"])


@router.post("/webhook")
async def receive_stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    executor: GenerationExecutor = Depends(get_generation_executor),
    uow_factory=Depends(get_uow_factory),
):
    """Receive a Stripe event.

    This endpoint:
    1. Verifies the signature over the raw body
    2. Extracts payment intent, amount, user and generation from the session
    3. Upserts the Order keyed by payment intent id
    4. On a new paid transition, claims the generation and schedules the
       executor to run after the response is sent

    HTTP Status Codes:
        200: Event verified (processed, duplicate, ignored or dropped)
        400: Payload or signature invalid, or webhook secret not configured
    """
    raw_body = await request.body()

    try:
        event = gateway.construct_event(raw_body, stripe_signature or "")
    except AuthenticationError as e:
        logger.warning("webhook.rejected", reason=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    event_type = event.get("type")
    event_id = event.get("id")
    logger.info("webhook.received", event_id=event_id, event_type=event_type)

    if event_type != CHECKOUT_COMPLETED:
        logger.debug("webhook.ignored", event_id=event_id, event_type=event_type)
        return {"received": True}

    try:
        session = (event.get("data") or {}).get("object") or {}
        details = extract_checkout_details(session)
        result = await fulfill_checkout(uow_factory, details)
    except MalformedEventError as e:
        logger.warning("webhook.malformed", event_id=event_id, reason=str(e))
        return {"received": True}
    except Exception as e:
        logger.error(
            "webhook.processing_failed",
            event_id=event_id,
            error_type=type(e).__name__,
            error_message=str(e),
            exc_info=True,
        )
        return {"received": True}

    if result.should_generate:
        background_tasks.add_task(run_generation, executor, details.generation_id)
        logger.info(
            "webhook.generation_scheduled",
            event_id=event_id,
            generation_id=details.generation_id,
        )

    return {"received": True}
