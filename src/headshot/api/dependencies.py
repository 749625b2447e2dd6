"""FastAPI dependencies for request validation and common operations.

This module provides reusable FastAPI dependencies for:
- Access to process-wide objects built in the app lifespan (settings, clients)
- Bearer token authentication
"""

from typing import Annotated, Awaitable, Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from headshot.core.config import Settings
from headshot.models.user import User
from headshot.services.auth_tokens import decode_access_token
from headshot.services.image_generation.executor import GenerationExecutor
from headshot.services.payments.stripe_gateway import StripeGateway
from headshot.services.storage.cloudinary_client import CloudinaryClient
from headshot.uow import UnitOfWork

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    """Get the settings instance created at startup."""
    return request.app.state.settings


def get_uow_factory(request: Request) -> Callable[[], Awaitable[UnitOfWork]]:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.generations.get_by_id(generation_id)
    """
    return request.app.state.uow_factory


def get_stripe_gateway(request: Request) -> StripeGateway:
    return request.app.state.stripe_gateway


def get_generation_executor(request: Request) -> GenerationExecutor:
    return request.app.state.generation_executor


def get_image_host(request: Request) -> CloudinaryClient:
    return request.app.state.image_host


async def get_current_user_optional(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
    uow_factory: Annotated[Callable[[], Awaitable[UnitOfWork]], Depends(get_uow_factory)],
) -> User | None:
    """Resolve the bearer token to a user, or None if absent or invalid."""
    if not credentials:
        return None

    user_id = decode_access_token(credentials.credentials, settings)
    if user_id is None:
        return None

    async with await uow_factory() as uow:
        return await uow.users.get_by_id(user_id)


def get_current_user(
    user: Annotated[User | None, Depends(get_current_user_optional)],
) -> User:
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
