"""Checkout fulfillment workflow.

Turns a verified ``checkout.session.completed`` event into an Order and, on a
genuine new paid transition, claims the Generation for processing.

Stripe delivers events at least once. Replays converge because the Order is
keyed by the payment intent id and the Generation is claimed with a
conditional update that only one delivery can win.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

import structlog
from sqlalchemy.exc import IntegrityError

from headshot.models.generation import GenerationStatus
from headshot.models.order import Order, OrderStatus
from headshot.services.exceptions import MalformedEventError
from headshot.uow import UnitOfWork

logger = structlog.get_logger(__name__)


class FulfillmentOutcome(str, Enum):
    """Result of the idempotent order upsert."""

    CREATED_PAID = "created_paid"
    CREATED_PENDING = "created_pending"
    MARKED_PAID = "marked_paid"
    DUPLICATE = "duplicate"
    STILL_PENDING = "still_pending"

    @property
    def is_new_payment(self) -> bool:
        return self in (FulfillmentOutcome.CREATED_PAID, FulfillmentOutcome.MARKED_PAID)


@dataclass(frozen=True)
class CheckoutDetails:
    """Fields extracted from a completed checkout session."""

    payment_intent_id: str
    amount_paid: int
    user_id: int
    generation_id: int
    session_id: str | None = None


@dataclass(frozen=True)
class FulfillmentResult:
    outcome: FulfillmentOutcome
    order_id: int | None
    should_generate: bool


def _parse_id(value: Any, field: str) -> int:
    if value is None or value == "":
        raise MalformedEventError(f"Missing {field} in checkout session")
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise MalformedEventError(f"Invalid {field} in checkout session: {value!r}")
    if parsed <= 0:
        raise MalformedEventError(f"Invalid {field} in checkout session: {value!r}")
    return parsed


def extract_checkout_details(session: dict) -> CheckoutDetails:
    """Extract order fields from a checkout session object.

    Args:
        session: ``event["data"]["object"]`` of a checkout.session.completed event

    Raises:
        MalformedEventError: Payment intent, user id or generation id missing or invalid
    """
    metadata = session.get("metadata") or {}

    payment_intent = session.get("payment_intent")
    if isinstance(payment_intent, dict):
        payment_intent = payment_intent.get("id")
    if not payment_intent or not isinstance(payment_intent, str):
        raise MalformedEventError("Missing payment_intent in checkout session")

    user_ref = session.get("client_reference_id") or metadata.get("userId")
    user_id = _parse_id(user_ref, "user id")
    generation_id = _parse_id(metadata.get("generationId"), "generation id")

    amount = session.get("amount_total") or 0
    if session.get("payment_status") not in (None, "paid", "no_payment_required"):
        # Delayed payment methods complete checkout before the money settles
        amount = 0

    return CheckoutDetails(
        payment_intent_id=payment_intent,
        amount_paid=int(amount),
        user_id=user_id,
        generation_id=generation_id,
        session_id=session.get("id"),
    )


async def _upsert_order(uow: UnitOfWork, details: CheckoutDetails) -> FulfillmentResult:
    generation = await uow.generations.get_by_id(details.generation_id)
    if generation is None:
        raise MalformedEventError(f"Generation {details.generation_id} not found")
    if generation.user_id != details.user_id:
        raise MalformedEventError(
            f"Generation {details.generation_id} is not owned by user {details.user_id}"
        )

    order = await uow.orders.get_by_payment_intent_id(details.payment_intent_id)

    if order is None:
        paid = details.amount_paid > 0
        order = await uow.orders.add(
            Order(
                user_id=details.user_id,
                generation_id=details.generation_id,
                stripe_payment_intent_id=details.payment_intent_id,
                amount_paid=details.amount_paid,
                status=OrderStatus.PAID if paid else OrderStatus.PENDING,
            )
        )
        outcome = FulfillmentOutcome.CREATED_PAID if paid else FulfillmentOutcome.CREATED_PENDING
        return FulfillmentResult(outcome, order.id, False)

    if order.status == OrderStatus.PAID:
        return FulfillmentResult(FulfillmentOutcome.DUPLICATE, order.id, False)

    if details.amount_paid > 0 and await uow.orders.mark_paid(order.id, details.amount_paid):  # type: ignore[arg-type]
        return FulfillmentResult(FulfillmentOutcome.MARKED_PAID, order.id, False)

    # Either still unsettled or a concurrent delivery marked it paid first
    if details.amount_paid > 0:
        return FulfillmentResult(FulfillmentOutcome.DUPLICATE, order.id, False)
    return FulfillmentResult(FulfillmentOutcome.STILL_PENDING, order.id, False)


async def fulfill_checkout(
    uow_factory: Callable[[], Awaitable[UnitOfWork]],
    details: CheckoutDetails,
) -> FulfillmentResult:
    """Record the payment and claim the generation for processing.

    The order upsert and the PENDING_PAYMENT -> PROCESSING claim commit
    together. ``should_generate`` is True only for the single delivery that
    won the claim; the caller then schedules the executor.

    Raises:
        MalformedEventError: Generation missing or not owned by the paying user
    """
    try:
        async with await uow_factory() as uow:
            result = await _upsert_order(uow, details)
            should_generate = False
            if result.outcome.is_new_payment:
                should_generate = await uow.generations.claim_for_processing(
                    details.generation_id,
                    from_statuses=(GenerationStatus.PENDING_PAYMENT,),
                )
    except IntegrityError:
        # Concurrent delivery inserted the same payment intent first
        logger.info(
            "webhook.duplicate_insert",
            payment_intent_id=details.payment_intent_id,
            generation_id=details.generation_id,
        )
        return FulfillmentResult(FulfillmentOutcome.DUPLICATE, None, False)

    logger.info(
        "webhook.order_upserted",
        outcome=result.outcome.value,
        order_id=result.order_id,
        payment_intent_id=details.payment_intent_id,
        generation_id=details.generation_id,
        amount_paid=details.amount_paid,
        should_generate=should_generate,
    )
    return FulfillmentResult(result.outcome, result.order_id, should_generate)
