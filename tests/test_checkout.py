"""Order creation and checkout return tests.

The Stripe SDK is patched; the gateway itself runs unmodified.
"""

from unittest.mock import patch

import pytest
import stripe
from sqlalchemy import func, select

from headshot.models.generation import Generation, GenerationStatus

CHECKOUT_URL = "https://checkout.stripe.com/c/pay/cs_test_123"
IMAGE_URL = "https://uploads.example.com/photos/me.jpg"


def order_form(**overrides) -> dict:
    form = {"inputImageUrl": IMAGE_URL, "gender": "male", "background": "office"}
    form.update(overrides)
    return form


async def all_generations(session_factory) -> list[Generation]:
    async with session_factory() as session:
        result = await session.execute(select(Generation))
        return list(result.scalars().all())


@pytest.mark.asyncio
class TestCreateGeneration:
    async def test_creates_pending_generation_and_redirects(
        self, test_client, session_factory, user, auth_headers
    ):
        with (
            patch("stripe.Price.list") as mock_prices,
            patch("stripe.checkout.Session.create") as mock_create,
        ):
            mock_prices.return_value = {"data": [{"id": "price_123"}]}
            mock_create.return_value = {"id": "cs_test_123", "url": CHECKOUT_URL}

            response = await test_client.post(
                "/api/generations", json=order_form(), headers=auth_headers(user)
            )

        assert response.status_code == 303
        assert response.headers["location"] == CHECKOUT_URL

        generations = await all_generations(session_factory)
        assert len(generations) == 1
        generation = generations[0]
        assert generation.status == GenerationStatus.PENDING_PAYMENT
        assert generation.image_url is None
        assert generation.user_id == user.id
        assert generation.gender == "male"
        assert generation.background == "office"

        assert mock_prices.call_args.kwargs["lookup_keys"] == ["headshot_basic"]
        params = mock_create.call_args.kwargs
        assert params["mode"] == "payment"
        assert params["line_items"] == [{"price": "price_123", "quantity": 1}]
        assert params["client_reference_id"] == str(user.id)
        assert params["metadata"] == {
            "generationId": str(generation.id),
            "userId": str(user.id),
        }
        assert params["success_url"] == (
            "http://test/api/stripe/checkout?session_id={CHECKOUT_SESSION_ID}"
        )
        assert params["cancel_url"] == "http://test/pricing"
        assert params["customer_creation"] == "always"
        assert params["api_key"] == "sk_test_mock"

    async def test_existing_stripe_customer_is_reused(
        self, test_client, uow_factory, user, auth_headers
    ):
        async with await uow_factory() as uow:
            await uow.users.set_stripe_customer_id(user.id, "cus_existing")

        with (
            patch("stripe.Price.list", return_value={"data": [{"id": "price_123"}]}),
            patch("stripe.checkout.Session.create") as mock_create,
        ):
            mock_create.return_value = {"id": "cs_test_123", "url": CHECKOUT_URL}
            await test_client.post("/api/generations", json=order_form(), headers=auth_headers(user))

        params = mock_create.call_args.kwargs
        assert params["customer"] == "cus_existing"
        assert "customer_creation" not in params

    @pytest.mark.parametrize(
        "overrides",
        [
            {"gender": "robot"},
            {"background": "moon"},
            {"inputImageUrl": "https://uploads.example.com/photo.gif"},
            {"product": "headshotDeluxe"},
        ],
    )
    async def test_invalid_order_returns_400_without_generation(
        self, overrides, test_client, session_factory, user, auth_headers
    ):
        with patch("stripe.checkout.Session.create") as mock_create:
            response = await test_client.post(
                "/api/generations", json=order_form(**overrides), headers=auth_headers(user)
            )

        assert response.status_code == 400
        assert response.json()["error"]
        assert response.json()["success"] == ""
        assert await all_generations(session_factory) == []
        mock_create.assert_not_called()

    async def test_stripe_failure_returns_400(self, test_client, session_factory, user, auth_headers):
        with patch("stripe.Price.list", side_effect=stripe.APIConnectionError("network down")):
            response = await test_client.post(
                "/api/generations", json=order_form(), headers=auth_headers(user)
            )

        assert response.status_code == 400
        generations = await all_generations(session_factory)
        assert [g.status for g in generations] == [GenerationStatus.PENDING_PAYMENT]

    async def test_missing_price_returns_400(self, test_client, user, auth_headers):
        with patch("stripe.Price.list", return_value={"data": []}):
            response = await test_client.post(
                "/api/generations", json=order_form(), headers=auth_headers(user)
            )

        assert response.status_code == 400

    async def test_requires_authentication(self, test_client, session_factory):
        response = await test_client.post("/api/generations", json=order_form())

        assert response.status_code == 401
        async with session_factory() as session:
            count = (await session.execute(select(func.count()).select_from(Generation))).scalar_one()
        assert count == 0


@pytest.mark.asyncio
class TestCheckoutReturn:
    async def test_paid_session_attaches_customer_and_redirects_to_dashboard(
        self, test_client, uow_factory, user
    ):
        session = {
            "id": "cs_test_123",
            "payment_status": "paid",
            "customer": {"id": "cus_123", "object": "customer"},
            "client_reference_id": str(user.id),
        }
        with patch("stripe.checkout.Session.retrieve", return_value=session) as mock_retrieve:
            response = await test_client.get(
                "/api/stripe/checkout", params={"session_id": "cs_test_123"}
            )

        assert response.status_code == 303
        assert response.headers["location"] == "/dashboard"
        assert mock_retrieve.call_args.kwargs["expand"] == ["customer"]

        async with await uow_factory() as uow:
            stored = await uow.users.get_by_id(user.id)
        assert stored.stripe_customer_id == "cus_123"

    async def test_missing_session_id_redirects_to_pricing(self, test_client):
        response = await test_client.get("/api/stripe/checkout")

        assert response.status_code == 303
        assert response.headers["location"] == "/pricing"

    @pytest.mark.parametrize(
        "session_overrides",
        [
            {"payment_status": "unpaid"},
            {"customer": None},
            {"customer": "cus_not_expanded"},
            {"client_reference_id": None},
            {"client_reference_id": "999999"},
        ],
    )
    async def test_invalid_session_redirects_to_error(
        self, session_overrides, test_client, uow_factory, user
    ):
        session = {
            "id": "cs_test_123",
            "payment_status": "paid",
            "customer": {"id": "cus_123", "object": "customer"},
            "client_reference_id": str(user.id),
        }
        session.update(session_overrides)

        with patch("stripe.checkout.Session.retrieve", return_value=session):
            response = await test_client.get(
                "/api/stripe/checkout", params={"session_id": "cs_test_123"}
            )

        assert response.status_code == 303
        assert response.headers["location"] == "/error"
        async with await uow_factory() as uow:
            assert (await uow.users.get_by_id(user.id)).stripe_customer_id is None

    async def test_stripe_error_redirects_to_error(self, test_client):
        with patch(
            "stripe.checkout.Session.retrieve",
            side_effect=stripe.InvalidRequestError("No such checkout session", param="id"),
        ):
            response = await test_client.get(
                "/api/stripe/checkout", params={"session_id": "cs_missing"}
            )

        assert response.headers["location"] == "/error"
