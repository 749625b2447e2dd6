"""Generation API endpoints.

This module implements:
- POST /api/generations - Create a generation and redirect to Stripe Checkout
- GET /api/generations - List the caller's generations
- POST /api/generations/retry - Retry a failed generation (form submission)
- GET /api/generation-status - Query a generation's status
- POST /api/generation-status - Mark a PROCESSING generation as failed
"""

from datetime import datetime
from typing import Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Form, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, Field

from headshot.api.dependencies import (
    get_current_user,
    get_current_user_optional,
    get_generation_executor,
    get_settings,
    get_stripe_gateway,
    get_uow_factory,
)
from headshot.core.config import Settings
from headshot.models.generation import Generation, GenerationStatus
from headshot.models.user import User
from headshot.services.checkout import PRODUCT_HEADSHOT_BASIC, ActionFailed, start_generation_order
from headshot.services.exceptions import (
    AuthorizationError,
    GenerationNotFoundError,
    LimitError,
    PaymentError,
    ServiceError,
    StateError,
)
from headshot.services.image_generation.executor import GenerationExecutor, run_generation
from headshot.services.payments.stripe_gateway import StripeGateway
from headshot.services.retry import retry_generation

logger = structlog.get_logger()
router = APIRouter(tags=["generations"])


# Request/Response Models


class CreateGenerationRequest(BaseModel):
    """Order form submission."""

    model_config = ConfigDict(populate_by_name=True)

    input_image_url: str = Field(..., alias="inputImageUrl", description="Hosted input photo URL")
    gender: str = Field(..., description="male or female")
    background: str = Field(..., description="neutral, office, city or nature")
    product: str = Field(default=PRODUCT_HEADSHOT_BASIC, description="Product to purchase")


class GenerationStatusResponse(BaseModel):
    id: int
    status: GenerationStatus
    image_url: str | None = Field(default=None, serialization_alias="imageUrl")


class GenerationResponse(BaseModel):
    """One entry of the caller's generation list."""

    id: int
    status: GenerationStatus
    gender: str
    background: str
    input_image_url: str = Field(serialization_alias="inputImageUrl")
    image_url: str | None = Field(default=None, serialization_alias="imageUrl")
    retry_count: int = Field(serialization_alias="retryCount")
    created_at: datetime = Field(serialization_alias="createdAt")

    @classmethod
    def from_generation(cls, generation: Generation) -> "GenerationResponse":
        return cls(
            id=generation.id,  # type: ignore[arg-type]
            status=generation.status,
            gender=generation.gender,
            background=generation.background,
            input_image_url=generation.input_image_url,
            image_url=generation.image_url,
            retry_count=generation.retry_count,
            created_at=generation.created_at,
        )


class MarkFailedResponse(BaseModel):
    success: bool
    message: str


RETRY_ERROR_STATUS: dict[type[ServiceError], int] = {
    GenerationNotFoundError: status.HTTP_404_NOT_FOUND,
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    StateError: status.HTTP_409_CONFLICT,
    LimitError: status.HTTP_400_BAD_REQUEST,
    PaymentError: status.HTTP_402_PAYMENT_REQUIRED,
}


def parse_generation_id(value: Any) -> int | None:
    """Parse a positive integer generation id, or return None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        generation_id = int(value)
    except (TypeError, ValueError):
        return None
    if isinstance(value, float) and value != generation_id:
        return None
    return generation_id if generation_id > 0 else None


def action_result(http_status: int, *, error: str = "", success: str = "") -> JSONResponse:
    return JSONResponse(status_code=http_status, content={"error": error, "success": success})


# Endpoints


@router.post("/api/generations")
async def create_generation(
    body: CreateGenerationRequest,
    user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    uow_factory=Depends(get_uow_factory),
):
    """Create a PENDING_PAYMENT generation and redirect to Stripe Checkout.

    Returns:
        303 redirect to the checkout URL, or 400 ``{error, success}``
    """
    result = await start_generation_order(
        uow_factory,
        gateway,
        user,
        input_image_url=body.input_image_url,
        gender=body.gender,
        background=body.background,
        product=body.product,
        price_lookup_keys={PRODUCT_HEADSHOT_BASIC: settings.stripe_price_lookup_key},
    )

    if isinstance(result, ActionFailed):
        return action_result(status.HTTP_400_BAD_REQUEST, error=result.message)

    return RedirectResponse(result.url, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/api/generations", response_model=list[GenerationResponse])
async def list_generations(
    user: User = Depends(get_current_user),
    uow_factory=Depends(get_uow_factory),
) -> list[GenerationResponse]:
    """List the caller's generations, newest first."""
    async with await uow_factory() as uow:
        generations = await uow.generations.list_by_user(user.id)  # type: ignore[arg-type]

    return [GenerationResponse.from_generation(g) for g in generations]


@router.post("/api/generations/retry")
async def retry_failed_generation(
    background_tasks: BackgroundTasks,
    generation_id: str | None = Form(default=None, alias="generationId"),
    user: User | None = Depends(get_current_user_optional),
    settings: Settings = Depends(get_settings),
    executor: GenerationExecutor = Depends(get_generation_executor),
    uow_factory=Depends(get_uow_factory),
) -> JSONResponse:
    """Retry a failed generation.

    Returns ``{error, success}`` with:
        200: Retry accepted, executor scheduled
        400: Invalid generation id or retry limit reached
        401: Not authenticated
        402: No paid order for the generation
        403: Caller does not own the generation
        404: Generation not found
        409: Generation is not FAILED
    """
    parsed_id = parse_generation_id(generation_id)
    if parsed_id is None:
        return action_result(status.HTTP_400_BAD_REQUEST, error="Invalid generation ID")

    if user is None:
        return action_result(status.HTTP_401_UNAUTHORIZED, error="Unauthorized")

    try:
        await retry_generation(
            uow_factory,
            parsed_id,
            user.id,  # type: ignore[arg-type]
            max_retries=settings.max_generation_retries,
        )
    except tuple(RETRY_ERROR_STATUS) as e:
        logger.info(
            "generation.retry_rejected",
            generation_id=parsed_id,
            user_id=user.id,
            reason=type(e).__name__,
        )
        return action_result(RETRY_ERROR_STATUS[type(e)], error=str(e))

    background_tasks.add_task(run_generation, executor, parsed_id)
    return action_result(status.HTTP_200_OK, success="Generation retry started")


@router.get("/api/generation-status", response_model=GenerationStatusResponse)
async def get_generation_status(
    generation_id: str | None = Query(default=None, alias="generationId"),
    uow_factory=Depends(get_uow_factory),
) -> GenerationStatusResponse:
    """Return ``{id, status, imageUrl}`` for a generation.

    Raises:
        HTTPException: 400 if the id is missing or malformed, 404 if not found
    """
    parsed_id = parse_generation_id(generation_id)
    if parsed_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid generation ID")

    async with await uow_factory() as uow:
        generation = await uow.generations.get_by_id(parsed_id)

    if generation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation not found")

    return GenerationStatusResponse(
        id=generation.id,  # type: ignore[arg-type]
        status=generation.status,
        image_url=generation.image_url,
    )


@router.post("/api/generation-status", response_model=MarkFailedResponse)
async def mark_generation_failed(
    request: Request,
    user: User | None = Depends(get_current_user_optional),
    uow_factory=Depends(get_uow_factory),
) -> MarkFailedResponse:
    """Mark a PROCESSING generation as FAILED (client-side timeout).

    Request body: ``{"generationId": int, "reason": str}``

    Raises:
        HTTPException: 400 invalid id or not PROCESSING, 401 unauthenticated,
            403 not owner, 404 not found
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid request body")

    generation_id = parse_generation_id(payload.get("generationId"))
    if generation_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid generation ID")

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    reason = str(payload.get("reason") or "Marked as failed by client")

    async with await uow_factory() as uow:
        generation = await uow.generations.get_by_id(generation_id)
        if generation is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation not found")
        if generation.user_id != user.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        if generation.status != GenerationStatus.PROCESSING:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Generation is {generation.status.value}, not PROCESSING",
            )

        updated = await uow.generations.mark_failed(generation_id, reason, only_if_processing=True)

    if not updated:
        # Executor finished between the read and the conditional update
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Generation is no longer PROCESSING"
        )

    logger.info(
        "generation.marked_failed",
        generation_id=generation_id,
        user_id=user.id,
        reason=reason,
    )
    return MarkFailedResponse(success=True, message="Generation marked as failed")
