"""Contract tests for GET /api/invoice/{session_id} and GET /api/bookings/{session_id}."""

from typing import Any, Callable, Generator
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from starlette.status import (
    HTTP_200_OK,
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from tourbook.config import Settings
from tourbook.models import BookingTrigger, CheckoutSessionSnapshot
from tourbook.services import BookingStore, StripeNotConfiguredError, StripeServiceError
from tourbook_api.dependencies import get_app_settings, get_bookings, get_stripe
from tourbook_api.main import app
from tourbook_api.routes.invoice import is_placeholder_session_id, sanitize_filename

SESSION_ID = "cs_test_a1b2c3d4e5f6"


@pytest.fixture
def stripe_service(session_object: Callable[..., dict[str, Any]]) -> MagicMock:
    service = MagicMock()
    service.retrieve_checkout_session.return_value = CheckoutSessionSnapshot.from_stripe(session_object())
    return service


@pytest.fixture
def client(stripe_service: MagicMock) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_stripe] = lambda: stripe_service
    app.dependency_overrides[get_app_settings] = lambda: Settings(site_url="https://tours.example.com")
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestInvoiceDownload:
    def test_inline_pdf(self, client: TestClient, stripe_service: MagicMock) -> None:
        response = client.get(f"/api/invoice/{SESSION_ID}")

        assert response.status_code == HTTP_200_OK
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")
        assert response.headers["Content-Disposition"] == (
            'inline; filename="Invoice-tourbook_2026-01-01_guatape-day-trip.pdf"'
        )
        assert response.headers["X-Invoice-Session"] == SESSION_ID
        assert response.headers["Cache-Control"] == "no-store"
        stripe_service.retrieve_checkout_session.assert_called_once_with(SESSION_ID)

    def test_download_as_attachment(self, client: TestClient) -> None:
        response = client.get(f"/api/invoice/{SESSION_ID}", params={"download": "1"})

        assert response.headers["Content-Disposition"].startswith("attachment;")

    def test_placeholder_session_id(self, client: TestClient, stripe_service: MagicMock) -> None:
        response = client.get("/api/invoice/{CHECKOUT_SESSION_ID}")

        assert response.status_code == HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "Invalid session_id placeholder"
        stripe_service.retrieve_checkout_session.assert_not_called()

    def test_unknown_session(self, client: TestClient, stripe_service: MagicMock) -> None:
        stripe_service.retrieve_checkout_session.side_effect = StripeServiceError(
            "No such checkout.session", stripe_error_code="resource_missing", http_status=404
        )

        response = client.get("/api/invoice/cs_test_missing")

        assert response.status_code == HTTP_404_NOT_FOUND
        assert response.json()["code"] == "ERR_004"

    def test_stripe_not_configured(self, client: TestClient, stripe_service: MagicMock) -> None:
        stripe_service.retrieve_checkout_session.side_effect = StripeNotConfiguredError("no key")

        response = client.get(f"/api/invoice/{SESSION_ID}")

        assert response.status_code == HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json()["code"] == "ERR_STRIPE_004"


class TestInvoiceHelpers:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("{CHECKOUT_SESSION_ID}", True), ("", True), ("  ", True), (None, True), (SESSION_ID, False)],
    )
    def test_is_placeholder_session_id(self, value: str | None, expected: bool) -> None:
        assert is_placeholder_session_id(value) is expected

    def test_sanitize_filename(self) -> None:
        assert sanitize_filename('a"b;c.pdf') == "a_b_c.pdf"


class TestBookingLookup:
    @pytest.fixture
    def store(self, db: Any) -> Generator[BookingStore, None, None]:
        store = BookingStore(db)
        app.dependency_overrides[get_bookings] = lambda: store
        yield store
        app.dependency_overrides.clear()

    def test_returns_booking(
        self,
        store: BookingStore,
        session_object: Callable[..., dict[str, Any]],
    ) -> None:
        store.apply(
            SESSION_ID,
            BookingTrigger.PAYMENT_SUCCEEDED,
            CheckoutSessionSnapshot.from_stripe(session_object()),
        )

        response = TestClient(app).get(f"/api/bookings/{SESSION_ID}")

        assert response.status_code == HTTP_200_OK
        body = response.json()
        assert body["stripe_session_id"] == SESSION_ID
        assert body["status"] == "paid"
        assert body["persons"] == 3

    def test_unknown_session(self, store: BookingStore) -> None:
        response = TestClient(app).get("/api/bookings/cs_test_unknown")

        assert response.status_code == HTTP_404_NOT_FOUND
        assert response.json()["code"] == "ERR_004"
