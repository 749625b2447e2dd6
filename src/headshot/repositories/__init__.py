"""Repository layer.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from headshot.repositories.generation import GenerationRepository
from headshot.repositories.order import OrderRepository
from headshot.repositories.user import UserRepository

__all__ = [
    "UserRepository",
    "GenerationRepository",
    "OrderRepository",
]
