"""pytest fixtures for headshot backend tests.

Provides:
- engine: Function-scoped in-memory SQLite engine with all tables created
- session_factory / uow_factory: Session and UnitOfWork factories on that engine
- settings: Test settings (validation of production secrets is skipped)
- user / other_user / make_generation / make_order: Seed data helpers
- fake_executor: Records scheduled generation executions
- app.state.image_host: Real CloudinaryClient with test credentials (signing only)
- app / test_client: FastAPI app with app.state injected, httpx AsyncClient
"""

import os

# Settings are read when headshot.app is imported; provide a test environment first
os.environ["TZ"] = "UTC"
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

from typing import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from headshot import models  # noqa: E402, F401
from headshot.app import create_app  # noqa: E402
from headshot.core.config import Settings  # noqa: E402
from headshot.models.generation import Generation, GenerationStatus  # noqa: E402
from headshot.models.order import Order, OrderStatus  # noqa: E402
from headshot.models.user import User  # noqa: E402
from headshot.services.auth_tokens import create_access_token  # noqa: E402
from headshot.services.payments.stripe_gateway import StripeGateway  # noqa: E402
from headshot.services.storage.cloudinary_client import CloudinaryClient  # noqa: E402
from headshot.uow import create_uow_factory  # noqa: E402

TEST_IMAGE_URL = "https://uploads.example.com/photos/me.jpg"


class FakeExecutor:
    """Stands in for GenerationExecutor; records scheduled generation ids."""

    def __init__(self):
        self.executed: list[int] = []

    async def execute(self, generation_id: int) -> str | None:
        self.executed.append(generation_id)
        return None


@pytest_asyncio.fixture(scope="function")
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Provide a fresh in-memory database per test.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory."""
    return create_uow_factory(session_factory)


@pytest.fixture
def settings() -> Settings:
    return Settings(  # type: ignore[call-arg]
        DATABASE_URL="sqlite+aiosqlite://",
        APP_ENV="test",
        BASE_URL="http://test",
        JWT_SECRET="test-secret-key-for-testing-only",
        STRIPE_SECRET_KEY="sk_test_mock",
        STRIPE_WEBHOOK_SECRET="whsec_test_mock",
        CLOUDINARY_CLOUD_NAME="demo",
        CLOUDINARY_API_KEY="123456",
        CLOUDINARY_API_SECRET="cloudinary-test-secret",
    )


@pytest_asyncio.fixture
async def user(uow_factory) -> User:
    async with await uow_factory() as uow:
        return await uow.users.add(User(email="buyer@example.com"))


@pytest_asyncio.fixture
async def other_user(uow_factory) -> User:
    async with await uow_factory() as uow:
        return await uow.users.add(User(email="someone-else@example.com"))


@pytest.fixture
def make_generation(uow_factory):
    """Create a generation; defaults to a valid PENDING_PAYMENT generation."""

    async def _make(user_id: int, **overrides) -> Generation:
        values = {
            "user_id": user_id,
            "gender": "male",
            "background": "office",
            "input_image_url": TEST_IMAGE_URL,
            "status": GenerationStatus.PENDING_PAYMENT,
        }
        values.update(overrides)
        async with await uow_factory() as uow:
            return await uow.generations.add(Generation(**values))

    return _make


@pytest.fixture
def make_order(uow_factory):
    async def _make(
        user_id: int,
        generation_id: int,
        payment_intent_id: str = "pi_test",
        amount_paid: int = 399,
        status: OrderStatus = OrderStatus.PAID,
    ) -> Order:
        async with await uow_factory() as uow:
            return await uow.orders.add(
                Order(
                    user_id=user_id,
                    generation_id=generation_id,
                    stripe_payment_intent_id=payment_intent_id,
                    amount_paid=amount_paid,
                    status=status,
                )
            )

    return _make


@pytest.fixture
def get_generation(uow_factory):
    """Read a generation through a fresh unit of work."""

    async def _get(generation_id: int) -> Generation | None:
        async with await uow_factory() as uow:
            return await uow.generations.get_by_id(generation_id)

    return _get


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def app(settings, uow_factory, session_factory, fake_executor):
    """FastAPI app with app.state injected (lifespan does not run under ASGITransport)."""
    app = create_app(settings)
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.stripe_gateway = StripeGateway(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        base_url=settings.base_url,
    )
    app.state.image_host = CloudinaryClient(
        cloud_name=settings.cloudinary_cloud_name,
        api_key=settings.cloudinary_api_key,
        api_secret=settings.cloudinary_api_secret,
    )
    app.state.generation_executor = fake_executor
    return app


@pytest_asyncio.fixture
async def test_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Provide AsyncClient for testing API endpoints with database access."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers(settings):
    def _headers(user: User) -> dict[str, str]:
        token = create_access_token(user.id, settings)  # type: ignore[arg-type]
        return {"Authorization": f"Bearer {token}"}

    return _headers
