"""Retry action for failed generations."""

from typing import Awaitable, Callable

import structlog

from headshot.models.generation import GenerationStatus
from headshot.services.exceptions import (
    AuthorizationError,
    GenerationNotFoundError,
    LimitError,
    PaymentError,
    StateError,
)
from headshot.uow import UnitOfWork

logger = structlog.get_logger(__name__)

MAX_GENERATION_RETRIES = 3


async def retry_generation(
    uow_factory: Callable[[], Awaitable[UnitOfWork]],
    generation_id: int,
    user_id: int,
    max_retries: int = MAX_GENERATION_RETRIES,
) -> int:
    """Claim a FAILED generation for another execution.

    Guards run in order and none of them writes anything. Only after all of
    them pass is the retry claimed with a single conditional update that
    increments ``retry_count`` and moves the generation to PROCESSING.
    The caller schedules the executor afterwards.

    Returns:
        The new retry count

    Raises:
        GenerationNotFoundError: Generation does not exist
        AuthorizationError: User does not own the generation
        StateError: Generation is not FAILED (or another retry won the claim)
        LimitError: Retry budget exhausted
        PaymentError: No paid order for the generation
    """
    async with await uow_factory() as uow:
        generation = await uow.generations.get_by_id(generation_id)
        if generation is None:
            raise GenerationNotFoundError(
                f"Generation {generation_id} not found", generation_id=generation_id
            )

        if generation.user_id != user_id:
            raise AuthorizationError("You do not have permission to retry this generation")

        if generation.status != GenerationStatus.FAILED:
            raise StateError("Only failed generations can be retried")

        if generation.retry_count >= max_retries:
            raise LimitError(f"Maximum retry limit ({max_retries}) reached")

        paid_order = await uow.orders.get_paid_for_generation(generation_id)
        if paid_order is None:
            raise PaymentError("No paid order found for this generation")

        # Read before the claim; the UPDATE synchronizes the loaded instance
        retry_count = generation.retry_count + 1

        claimed = await uow.generations.claim_for_retry(generation_id, max_retries)
        if not claimed:
            raise StateError("Generation is already being retried")

    logger.info(
        "generation.retry_claimed",
        generation_id=generation_id,
        user_id=user_id,
        retry_count=retry_count,
    )
    return retry_count
