"""Generation repository.

Every state change is a targeted conditional UPDATE so that the status column
itself acts as the compare-and-swap gate between concurrent writers (webhook
redelivery, user retry, client timeout, executor).
"""

from collections.abc import Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from headshot.core.timezone import utcnow
from headshot.models.generation import Generation, GenerationStatus


class GenerationRepository:
    """Repository for Generation entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, generation: Generation) -> Generation:
        """Persist new generation to database.

        Args:
            generation: Generation entity to persist

        Returns:
            Persisted generation with generated ID
        """
        self.session.add(generation)
        await self.session.flush()
        return generation

    async def get_by_id(self, generation_id: int) -> Generation | None:
        """Retrieve generation by ID.

        Args:
            generation_id: Generation's unique identifier

        Returns:
            Generation if found, None otherwise
        """
        result = await self.session.execute(
            select(Generation).where(Generation.id == generation_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def list_by_user(self, user_id: int, limit: int = 100) -> list[Generation]:
        """Retrieve a user's generations, newest first."""
        result = await self.session.execute(
            select(Generation)
            .where(Generation.user_id == user_id)  # type: ignore[arg-type]
            .order_by(Generation.created_at.desc(), Generation.id.desc())  # type: ignore[attr-defined,union-attr]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def claim_for_processing(
        self,
        generation_id: int,
        from_statuses: Iterable[GenerationStatus] = (GenerationStatus.PENDING_PAYMENT,),
    ) -> bool:
        """Move a generation into PROCESSING if it is still in one of ``from_statuses``.

        Query:
            UPDATE generations
            SET status = 'PROCESSING', image_url = NULL
            WHERE id = :id AND status IN (:from_statuses)

        Returns:
            True if this caller won the transition, False if another writer got
            there first or the generation is in a different state.
        """
        result = await self.session.execute(
            update(Generation)
            .where(Generation.id == generation_id)  # type: ignore[arg-type]
            .where(Generation.status.in_(list(from_statuses)))  # type: ignore[attr-defined]
            .values(
                status=GenerationStatus.PROCESSING,
                image_url=None,
                error_message=None,
                updated_at=utcnow(),
            )
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def claim_for_retry(self, generation_id: int, max_retries: int) -> bool:
        """Move a FAILED generation back to PROCESSING and count the retry.

        Query:
            UPDATE generations
            SET status = 'PROCESSING', retry_count = retry_count + 1
            WHERE id = :id AND status = 'FAILED' AND retry_count < :max_retries

        Returns:
            True if the retry was claimed, False on contention or exhausted budget.
        """
        result = await self.session.execute(
            update(Generation)
            .where(Generation.id == generation_id)  # type: ignore[arg-type]
            .where(Generation.status == GenerationStatus.FAILED)  # type: ignore[arg-type]
            .where(Generation.retry_count < max_retries)  # type: ignore[arg-type]
            .values(
                status=GenerationStatus.PROCESSING,
                retry_count=Generation.retry_count + 1,
                image_url=None,
                error_message=None,
                updated_at=utcnow(),
            )
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def mark_completed(self, generation_id: int, image_url: str) -> bool:
        """Store the hosted image URL and mark COMPLETED, only from PROCESSING.

        Raises:
            ValueError: If image_url is empty

        Returns:
            True if the generation was completed, False if it had left PROCESSING.
        """
        if not image_url:
            raise ValueError("image_url cannot be empty")

        result = await self.session.execute(
            update(Generation)
            .where(Generation.id == generation_id)  # type: ignore[arg-type]
            .where(Generation.status == GenerationStatus.PROCESSING)  # type: ignore[arg-type]
            .values(
                status=GenerationStatus.COMPLETED,
                image_url=image_url,
                error_message=None,
                updated_at=utcnow(),
            )
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def mark_failed(
        self, generation_id: int, reason: str, only_if_processing: bool = False
    ) -> bool:
        """Mark generation FAILED and clear any image URL.

        Args:
            generation_id: Generation to update
            reason: Error description (truncated to 1000 characters)
            only_if_processing: Apply only when the generation is still PROCESSING

        Returns:
            True if a row was updated
        """
        stmt = update(Generation).where(Generation.id == generation_id)  # type: ignore[arg-type]
        if only_if_processing:
            stmt = stmt.where(Generation.status == GenerationStatus.PROCESSING)  # type: ignore[arg-type]
        else:
            stmt = stmt.where(Generation.status != GenerationStatus.COMPLETED)  # type: ignore[arg-type]

        result = await self.session.execute(
            stmt.values(
                status=GenerationStatus.FAILED,
                image_url=None,
                error_message=reason[:1000],
                updated_at=utcnow(),
            )
        )
        return result.rowcount == 1  # type: ignore[attr-defined]
