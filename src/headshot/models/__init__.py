"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from headshot.models.generation import (
    Background,
    Gender,
    Generation,
    GenerationStatus,
    InvalidStateTransition,
)
from headshot.models.order import Order, OrderStatus
from headshot.models.user import User

__all__ = [
    "User",
    "Generation",
    "GenerationStatus",
    "Gender",
    "Background",
    "InvalidStateTransition",
    "Order",
    "OrderStatus",
]
