"""Contract tests for POST /api/checkout.

Tests cover:
- 200 with redirect URL, session id and request id
- 400 with the first validation message (bad quantity, past date, bad email)
- 404 for tours missing from the catalog
- Provider errors: client-caused 4xx kept, others 502
- Mock mode
"""

from datetime import datetime, timezone
from typing import Any, Generator
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from starlette.status import (
    HTTP_200_OK,
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_502_BAD_GATEWAY,
)

from tourbook.config import Settings
from tourbook.services import CatalogService, CheckoutService, StripeServiceError
from tourbook_api.dependencies import get_checkout_service
from tourbook_api.main import app

SITE_URL = "https://tours.example.com"


@pytest.fixture
def stripe_service() -> MagicMock:
    service = MagicMock()
    service.create_checkout_session.return_value = {
        "session_id": "cs_test_contract",
        "checkout_url": "https://checkout.stripe.com/c/pay/cs_test_contract",
        "expires_at": datetime(2026, 12, 1, tzinfo=timezone.utc),
        "payment_intent_id": None,
    }
    return service


@pytest.fixture
def settings() -> Settings:
    return Settings(site_url=SITE_URL, exchange_rate=4000)


@pytest.fixture
def client(stripe_service: MagicMock, settings: Settings) -> Generator[TestClient, None, None]:
    checkout = CheckoutService(catalog=CatalogService(), stripe_service=stripe_service, settings=settings)
    app.dependency_overrides[get_checkout_service] = lambda: checkout
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestCheckoutSuccess:
    def test_returns_redirect_url(self, client: TestClient, booking_payload: dict[str, Any]) -> None:
        response = client.post("/api/checkout", json=booking_payload)

        assert response.status_code == HTTP_200_OK
        body = response.json()
        assert body["url"] == "https://checkout.stripe.com/c/pay/cs_test_contract"
        assert body["session_id"] == "cs_test_contract"
        assert body["request_id"]

    def test_response_headers(self, client: TestClient, booking_payload: dict[str, Any]) -> None:
        response = client.post(
            "/api/checkout",
            json=booking_payload,
            headers={"X-Correlation-ID": "req-123"},
        )

        assert response.headers["Cache-Control"] == "no-store"
        assert response.headers["X-Request-ID"] == "req-123"
        assert response.headers["X-Correlation-ID"] == "req-123"
        assert response.headers["X-Stripe-Locale"] == "es-419"
        assert response.json()["request_id"] == "req-123"

    def test_accept_language_sets_locale(
        self, client: TestClient, booking_payload: dict[str, Any]
    ) -> None:
        del booking_payload["locale"]

        response = client.post(
            "/api/checkout", json=booking_payload, headers={"Accept-Language": "pt-BR,pt;q=0.9"}
        )

        assert response.headers["X-Stripe-Locale"] == "pt-BR"

    def test_amount_comes_from_catalog(
        self,
        client: TestClient,
        stripe_service: MagicMock,
        booking_payload: dict[str, Any],
    ) -> None:
        booking_payload["tour"]["price"] = 1

        client.post("/api/checkout", json=booking_payload)

        params = stripe_service.create_checkout_session.call_args.kwargs["params"]
        assert params["line_items"][0]["price_data"]["unit_amount"] == 7000

    def test_mock_mode(self, stripe_service: MagicMock, booking_payload: dict[str, Any]) -> None:
        checkout = CheckoutService(
            catalog=CatalogService(),
            stripe_service=stripe_service,
            settings=Settings(site_url=SITE_URL, stripe_mock=True),
        )
        app.dependency_overrides[get_checkout_service] = lambda: checkout
        try:
            response = TestClient(app).post("/api/checkout", json=booking_payload)
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == HTTP_200_OK
        assert response.json()["session_id"] is None
        assert response.json()["url"].startswith(f"{SITE_URL}/checkout/success?mock=1")
        stripe_service.create_checkout_session.assert_not_called()


class TestCheckoutValidation:
    """Invalid requests are 400 with the first validation message."""

    def test_quantity_zero(
        self,
        client: TestClient,
        stripe_service: MagicMock,
        booking_payload: dict[str, Any],
    ) -> None:
        booking_payload["quantity"] = 0

        response = client.post("/api/checkout", json=booking_payload)

        assert response.status_code == HTTP_400_BAD_REQUEST
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "ERR_001"
        assert body["details"]["field"] == "quantity"
        assert body["error"]
        stripe_service.create_checkout_session.assert_not_called()

    def test_past_date(self, client: TestClient, booking_payload: dict[str, Any]) -> None:
        booking_payload["date"] = "2020-01-01"

        response = client.post("/api/checkout", json=booking_payload)

        assert response.status_code == HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "ERR_002"
        assert response.json()["error"] == "Tour date must be today or later"

    def test_invalid_email(self, client: TestClient, booking_payload: dict[str, Any]) -> None:
        booking_payload["customer"]["email"] = "not-an-email"

        response = client.post("/api/checkout", json=booking_payload)

        assert response.status_code == HTTP_400_BAD_REQUEST
        assert response.json()["details"]["field"] == "customer.email"

    def test_missing_body(self, client: TestClient) -> None:
        response = client.post("/api/checkout", content=b"", headers={"Content-Type": "application/json"})

        assert response.status_code == HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "ERR_001"

    def test_unknown_tour(self, client: TestClient, booking_payload: dict[str, Any]) -> None:
        booking_payload["tour"] = {"slug": "moon-walk", "title": "Moon Walk"}

        response = client.post("/api/checkout", json=booking_payload)

        assert response.status_code == HTTP_404_NOT_FOUND
        assert response.json()["code"] == "ERR_003"


class TestCheckoutProviderErrors:
    def test_client_caused_error_keeps_status(
        self,
        client: TestClient,
        stripe_service: MagicMock,
        booking_payload: dict[str, Any],
    ) -> None:
        stripe_service.create_checkout_session.side_effect = StripeServiceError(
            "Amount too small", stripe_error_code="amount_too_small", http_status=400
        )

        response = client.post("/api/checkout", json=booking_payload)

        assert response.status_code == HTTP_400_BAD_REQUEST
        body = response.json()
        assert body["code"] == "ERR_STRIPE_002"
        assert body["details"] == {"stripe_error_code": "amount_too_small", "retryable": False}
        assert body["error"] == "The booking amount is below the payment minimum."

    def test_provider_outage_is_bad_gateway(
        self,
        client: TestClient,
        stripe_service: MagicMock,
        booking_payload: dict[str, Any],
    ) -> None:
        stripe_service.create_checkout_session.side_effect = StripeServiceError(
            "Connection reset", stripe_error_code="api_connection_error"
        )

        response = client.post("/api/checkout", json=booking_payload)

        assert response.status_code == HTTP_502_BAD_GATEWAY
        assert response.json()["details"]["retryable"] is True


def test_ping() -> None:
    response = TestClient(app).get("/api/ping")

    assert response.status_code == HTTP_200_OK
    assert response.json()["status"] == "ok"
    assert response.json()["service"] == "tourbook-api"
