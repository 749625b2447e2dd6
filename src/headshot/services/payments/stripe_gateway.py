"""Stripe gateway: webhook verification, price lookup and checkout sessions."""

import asyncio
from typing import Any

import stripe
import structlog

from headshot.services.exceptions import AuthenticationError, PermanentError

logger = structlog.get_logger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


def as_dict(obj: Any) -> dict:
    """Return a plain ``dict`` view of a Stripe object (or pass a dict through)."""
    if isinstance(obj, dict):
        return obj
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    raise TypeError(f"Cannot convert {type(obj).__name__} to dict")


class StripeGateway:
    """Thin wrapper around the Stripe SDK.

    The API key is passed per request instead of being assigned to the global
    ``stripe.api_key``; the gateway is created once at startup and injected.
    """

    def __init__(self, secret_key: str, webhook_secret: str, base_url: str):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.base_url = base_url.rstrip("/")

    def construct_event(self, payload: bytes, signature: str) -> dict:
        """Verify the webhook signature and parse the event.

        Args:
            payload: Raw request body, exactly as received
            signature: Value of the ``Stripe-Signature`` header

        Returns:
            Event as a plain dictionary

        Raises:
            AuthenticationError: Secret missing, payload unparsable or signature invalid
        """
        if not self.webhook_secret:
            raise AuthenticationError("STRIPE_WEBHOOK_SECRET is not configured")
        if not signature:
            raise AuthenticationError("Missing Stripe-Signature header")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            raise AuthenticationError(f"Invalid payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            raise AuthenticationError(f"Invalid signature: {e}") from e

        return as_dict(event)

    async def resolve_price_lookup_key(self, lookup_key: str) -> str:
        """Resolve a stable price lookup key to the current Stripe price id.

        Raises:
            PermanentError: If no active price carries the lookup key
        """
        prices = await asyncio.to_thread(
            stripe.Price.list,
            lookup_keys=[lookup_key],
            active=True,
            limit=1,
            api_key=self.secret_key,
        )
        data = as_dict(prices).get("data") or []
        if not data:
            raise PermanentError(f"No active Stripe price found for lookup key '{lookup_key}'")
        return as_dict(data[0])["id"]

    async def create_checkout_session(
        self,
        *,
        price_id: str,
        user_id: int,
        generation_id: int,
        customer_id: str | None = None,
    ) -> str:
        """Create a one-time payment Checkout Session and return its URL.

        The user id travels as ``client_reference_id`` and, together with the
        generation id, in the session metadata read back by the webhook.

        Raises:
            PermanentError: If Stripe returns no checkout URL
        """
        params: dict[str, Any] = {
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "mode": "payment",
            "success_url": f"{self.base_url}/api/stripe/checkout?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{self.base_url}/pricing",
            "client_reference_id": str(user_id),
            "metadata": {"generationId": str(generation_id), "userId": str(user_id)},
            "allow_promotion_codes": True,
        }
        if customer_id:
            params["customer"] = customer_id
        else:
            params["customer_creation"] = "always"

        session = await asyncio.to_thread(
            stripe.checkout.Session.create, api_key=self.secret_key, **params
        )
        url = as_dict(session).get("url")
        if not url:
            raise PermanentError("Stripe checkout did not return a URL")

        logger.info(
            "checkout.session_created",
            generation_id=generation_id,
            user_id=user_id,
            session_id=as_dict(session).get("id"),
        )
        return url

    async def retrieve_checkout_session(self, session_id: str) -> dict:
        """Fetch a Checkout Session with its customer expanded."""
        session = await asyncio.to_thread(
            stripe.checkout.Session.retrieve,
            session_id,
            expand=["customer"],
            api_key=self.secret_key,
        )
        return as_dict(session)
