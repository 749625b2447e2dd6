"""User repository."""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from headshot.core.timezone import utcnow
from headshot.models.user import User


class UserRepository:
    """Repository for User entities."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, user: User) -> User:
        """Persist new user to database."""
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_by_id(self, user_id: int) -> User | None:
        """Retrieve user by ID."""
        result = await self.session.execute(select(User).where(User.id == user_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def set_stripe_customer_id(self, user_id: int, customer_id: str) -> bool:
        """Attach a Stripe customer id to the user.

        Returns:
            True if the user exists and was updated
        """
        result = await self.session.execute(
            update(User)
            .where(User.id == user_id)  # type: ignore[arg-type]
            .values(stripe_customer_id=customer_id, updated_at=utcnow())
        )
        return result.rowcount == 1  # type: ignore[attr-defined]
