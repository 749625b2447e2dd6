"""Order repository.

Orders are keyed externally by the Stripe payment intent id; the unique
constraint on that column is the primary de-duplication mechanism.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from headshot.core.timezone import utcnow
from headshot.models.order import Order, OrderStatus


class OrderRepository:
    """Repository for Order entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, order: Order) -> Order:
        """Persist new order to database.

        Raises:
            IntegrityError: If an order with the same payment intent id already exists
        """
        self.session.add(order)
        await self.session.flush()
        return order

    async def get_by_id(self, order_id: int) -> Order | None:
        """Retrieve order by ID."""
        result = await self.session.execute(select(Order).where(Order.id == order_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def get_by_payment_intent_id(self, payment_intent_id: str) -> Order | None:
        """Retrieve order by Stripe payment intent id.

        Args:
            payment_intent_id: External payment intent identifier (unique)

        Returns:
            Order if found, None otherwise
        """
        result = await self.session.execute(
            select(Order).where(Order.stripe_payment_intent_id == payment_intent_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def mark_paid(self, order_id: int, amount_paid: int) -> bool:
        """Mark a not-yet-paid order as paid with the settled amount.

        Query:
            UPDATE orders
            SET status = 'paid', amount_paid = :amount_paid, updated_at = now()
            WHERE id = :id AND status != 'paid'

        Returns:
            True if this call performed the pending -> paid transition
        """
        result = await self.session.execute(
            update(Order)
            .where(Order.id == order_id)  # type: ignore[arg-type]
            .where(Order.status != OrderStatus.PAID)  # type: ignore[arg-type]
            .values(status=OrderStatus.PAID, amount_paid=amount_paid, updated_at=utcnow())
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def get_paid_for_generation(self, generation_id: int) -> Order | None:
        """Retrieve the paid order for a generation, if any."""
        result = await self.session.execute(
            select(Order)
            .where(Order.generation_id == generation_id)  # type: ignore[arg-type]
            .where(Order.status == OrderStatus.PAID)  # type: ignore[arg-type]
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_by_user(self, user_id: int) -> list[Order]:
        """Retrieve a user's orders, newest first."""
        result = await self.session.execute(
            select(Order)
            .where(Order.user_id == user_id)  # type: ignore[arg-type]
            .order_by(Order.created_at.desc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())
