"""Order creation and checkout return handling.

Both actions return an explicit result value (``RedirectTo`` or
``ActionFailed``) instead of raising to short-circuit into a redirect; the
routes branch on the result type.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable

import stripe
import structlog

from headshot.models.generation import Generation
from headshot.models.user import User
from headshot.services.exceptions import ServiceError
from headshot.services.image_generation.options_validator import validate_generation_options
from headshot.services.payments.stripe_gateway import StripeGateway, as_dict
from headshot.uow import UnitOfWork

logger = structlog.get_logger(__name__)

PRODUCT_HEADSHOT_BASIC = "headshotBasic"

PRICING_PATH = "/pricing"
DASHBOARD_PATH = "/dashboard"
ERROR_PATH = "/error"


@dataclass(frozen=True)
class RedirectTo:
    url: str


@dataclass(frozen=True)
class ActionFailed:
    message: str


async def start_generation_order(
    uow_factory: Callable[[], Awaitable[UnitOfWork]],
    gateway: StripeGateway,
    user: User,
    *,
    input_image_url: str,
    gender: str,
    background: str,
    product: str,
    price_lookup_keys: dict[str, str],
) -> RedirectTo | ActionFailed:
    """Create a PENDING_PAYMENT generation and open a Stripe checkout for it.

    Args:
        uow_factory: Unit of work factory
        gateway: Stripe gateway
        user: Authenticated buyer
        input_image_url: Hosted URL of the uploaded photo
        gender: Gender option
        background: Background option
        product: Product name from the order form
        price_lookup_keys: Product name -> Stripe price lookup key

    Returns:
        RedirectTo(checkout URL) on success, ActionFailed(message) otherwise
    """
    lookup_key = price_lookup_keys.get(product)
    if lookup_key is None:
        return ActionFailed(f"Unknown product '{product}'")

    try:
        options = validate_generation_options(gender, background, input_image_url)
    except ValueError as e:
        return ActionFailed(str(e))

    async with await uow_factory() as uow:
        generation = await uow.generations.add(
            Generation(
                user_id=user.id,  # type: ignore[arg-type]
                gender=options.gender.value,
                background=options.background.value,
                input_image_url=options.input_image_url,
            )
        )
        generation_id = generation.id

    logger.info("generation.created", generation_id=generation_id, user_id=user.id)

    try:
        price_id = await gateway.resolve_price_lookup_key(lookup_key)
        checkout_url = await gateway.create_checkout_session(
            price_id=price_id,
            user_id=user.id,  # type: ignore[arg-type]
            generation_id=generation_id,  # type: ignore[arg-type]
            customer_id=user.stripe_customer_id,
        )
    except (stripe.StripeError, ServiceError) as e:
        logger.error(
            "checkout.session_failed",
            generation_id=generation_id,
            user_id=user.id,
            error_type=type(e).__name__,
            error_message=str(e),
        )
        return ActionFailed("Failed to start checkout. Please try again.")

    return RedirectTo(checkout_url)


async def complete_checkout_redirect(
    uow_factory: Callable[[], Awaitable[UnitOfWork]],
    gateway: StripeGateway,
    session_id: str | None,
) -> RedirectTo:
    """Handle the browser's return from Stripe Checkout.

    Confirms the session is paid, attaches the Stripe customer to the user
    named by ``client_reference_id`` and sends the browser to the dashboard.
    Fulfillment itself happens in the webhook, not here.
    """
    if not session_id:
        return RedirectTo(PRICING_PATH)

    try:
        session = await gateway.retrieve_checkout_session(session_id)

        if session.get("payment_status") != "paid":
            raise ServiceError(f"Checkout session {session_id} is not paid")

        customer = session.get("customer")
        if customer is None or isinstance(customer, str):
            raise ServiceError("Checkout session has no expanded customer")
        customer_id = as_dict(customer).get("id")
        if not customer_id:
            raise ServiceError("Checkout session customer has no id")

        user_ref = session.get("client_reference_id")
        if not user_ref:
            raise ServiceError("Checkout session has no client_reference_id")
        user_id = int(user_ref)

        async with await uow_factory() as uow:
            updated = await uow.users.set_stripe_customer_id(user_id, customer_id)
        if not updated:
            raise ServiceError(f"User {user_id} not found")

    except Exception as e:
        logger.error(
            "checkout.redirect_failed",
            session_id=session_id,
            error_type=type(e).__name__,
            error_message=str(e),
        )
        return RedirectTo(ERROR_PATH)

    logger.info("checkout.completed", session_id=session_id, user_id=user_id)
    return RedirectTo(DASHBOARD_PATH)
