"""Generation executor.

Runs one generation end to end: re-validate stored options, call the
inference provider, copy the result to the image host and record the outcome.

Callers invoke the executor only right after they won a transition into
PROCESSING (webhook trigger or retry claim). Every failure path writes FAILED
before the error leaves this module, so no generation is left in PROCESSING.
"""

import asyncio
import time
from typing import Awaitable, Callable, Protocol

import structlog

from headshot.models.generation import GenerationStatus
from headshot.services.exceptions import (
    DataIntegrityError,
    ExternalServiceError,
    GenerationError,
    GenerationNotFoundError,
    PermanentError,
    TransientError,
)
from headshot.services.image_generation.options_validator import (
    GenerationOptions,
    validate_generation_options,
)
from headshot.services.storage.cloudinary_client import UploadResult
from headshot.uow import UnitOfWork

logger = structlog.get_logger(__name__)


class InferenceClient(Protocol):
    async def generate_headshot(self, options: GenerationOptions) -> str: ...


class ImageHost(Protocol):
    async def upload_from_url(self, file_url: str, public_id: str) -> UploadResult: ...


def public_id_for(generation_id: int) -> str:
    """Deterministic image-host key; re-running a generation overwrites its asset."""
    return f"generation-{generation_id}"


class GenerationExecutor:
    """Executes headshot generations against the inference provider and image host."""

    def __init__(
        self,
        uow_factory: Callable[[], Awaitable[UnitOfWork]],
        inference: InferenceClient,
        image_host: ImageHost,
    ):
        self.uow_factory = uow_factory
        self.inference = inference
        self.image_host = image_host

    async def execute(self, generation_id: int) -> str | None:
        """Run the generation and persist its result.

        Workflow:
        1. Load generation (must exist and be PROCESSING)
        2. Re-validate stored options
        3. Call the inference provider
        4. Upload the output under ``generation-{id}``
        5. Mark COMPLETED with the hosted URL

        Returns:
            Hosted image URL, or None when the generation was skipped or the
            result was discarded because the generation left PROCESSING.

        Raises:
            GenerationNotFoundError: Generation row does not exist
            DataIntegrityError: Stored options failed validation (now FAILED)
            ExternalServiceError: Inference or hosting failed (now FAILED)
            asyncio.CancelledError: Task cancelled mid-run (now FAILED)
        """
        start_time = time.time()

        try:
            options = await self._load_options(generation_id)
            if options is None:
                return None

            logger.info("generation.started", generation_id=generation_id)

            try:
                output_url = await self.inference.generate_headshot(options)
            except (TransientError, PermanentError) as e:
                raise ExternalServiceError(
                    f"Inference failed: {e}", generation_id=generation_id
                ) from e
            if not output_url:
                raise ExternalServiceError(
                    "Inference returned no image", generation_id=generation_id
                )

            try:
                upload = await self.image_host.upload_from_url(
                    output_url, public_id=public_id_for(generation_id)
                )
            except (TransientError, PermanentError) as e:
                raise ExternalServiceError(
                    f"Image upload failed: {e}", generation_id=generation_id
                ) from e

            async with await self.uow_factory() as uow:
                completed = await uow.generations.mark_completed(generation_id, upload.secure_url)

        except GenerationNotFoundError:
            raise
        except GenerationError as e:
            await self._fail(generation_id, str(e), type(e).__name__)
            raise
        except asyncio.CancelledError:
            await asyncio.shield(
                self._fail(generation_id, "Generation cancelled", "CancelledError")
            )
            raise
        except Exception as e:
            await self._fail(generation_id, f"Unexpected error: {e}", type(e).__name__)
            raise ExternalServiceError(
                f"Unexpected error: {e}", generation_id=generation_id
            ) from e

        duration = time.time() - start_time
        if not completed:
            logger.warning(
                "generation.completion_discarded",
                generation_id=generation_id,
                image_url=upload.secure_url,
                duration_seconds=duration,
            )
            return None

        logger.info(
            "generation.succeeded",
            generation_id=generation_id,
            image_url=upload.secure_url,
            duration_seconds=duration,
        )
        return upload.secure_url

    async def _load_options(self, generation_id: int) -> GenerationOptions | None:
        async with await self.uow_factory() as uow:
            generation = await uow.generations.get_by_id(generation_id)

        if generation is None:
            raise GenerationNotFoundError(
                f"Generation {generation_id} not found", generation_id=generation_id
            )

        if generation.status != GenerationStatus.PROCESSING:
            logger.info(
                "generation.skipped",
                generation_id=generation_id,
                status=generation.status.value,
            )
            return None

        try:
            return validate_generation_options(
                generation.gender, generation.background, generation.input_image_url
            )
        except ValueError as e:
            raise DataIntegrityError(
                f"Stored generation options are invalid: {e}", generation_id=generation_id
            ) from e

    async def _fail(self, generation_id: int, reason: str, error_type: str) -> None:
        # Fresh unit of work: the failing one may already be rolled back
        async with await self.uow_factory() as uow:
            await uow.generations.mark_failed(generation_id, reason)

        logger.error(
            "generation.failed",
            generation_id=generation_id,
            error_type=error_type,
            error_message=reason,
        )


async def run_generation(executor: GenerationExecutor, generation_id: int) -> None:
    """Background-task entry point for the executor.

    Generation errors are logged here; their FAILED status is already stored.
    """
    try:
        await executor.execute(generation_id)
    except GenerationError as e:
        logger.error(
            "generation.background_failed",
            generation_id=generation_id,
            error_type=type(e).__name__,
            error_message=str(e),
        )
