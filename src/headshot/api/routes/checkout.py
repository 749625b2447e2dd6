"""Stripe Checkout return endpoint."""

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse

from headshot.api.dependencies import get_stripe_gateway, get_uow_factory
from headshot.services.checkout import complete_checkout_redirect
from headshot.services.payments.stripe_gateway import StripeGateway

router = APIRouter(prefix="/api/stripe", tags=["stripe"])


@router.get("/checkout")
async def checkout_return(
    session_id: str | None = Query(default=None),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    uow_factory=Depends(get_uow_factory),
) -> RedirectResponse:
    """Redirect the browser after Stripe Checkout.

    Redirects to /pricing without a session id, /dashboard once the paid
    session's customer is attached to the user, /error on any failure.
    """
    result = await complete_checkout_redirect(uow_factory, gateway, session_id)
    return RedirectResponse(result.url, status_code=status.HTTP_303_SEE_OTHER)
