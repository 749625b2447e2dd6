"""Order entity - one payment transaction for exactly one Generation."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from headshot.core.timezone import utcnow


class OrderStatus(str, Enum):
    """Order payment status."""

    PENDING = "pending"
    PAID = "paid"


class Order(SQLModel, table=True):
    """Order records a Stripe payment; keyed externally by payment intent id.

    Orders are never deleted (kept for audit and refunds).
    """

    __tablename__ = "orders"  # type: ignore[assignment]

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    generation_id: int = Field(foreign_key="generations.id", index=True)
    stripe_payment_intent_id: str = Field(max_length=255, unique=True, index=True)
    amount_paid: int = Field(default=0, ge=0)  # minor currency units
    status: OrderStatus = Field(default=OrderStatus.PENDING)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
