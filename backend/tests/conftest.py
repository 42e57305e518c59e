"""Pytest configuration and fixtures for the tour booking backend tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto (tours, bookings, webhook-events, invoice-sends)
- Sample booking payloads and Stripe Checkout Session objects
- Stripe webhook signing for contract tests
"""

import hashlib
import hmac
import json
import os
import time
from datetime import timedelta
from typing import Any, Callable, Generator

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("ENVIRONMENT", "dev")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-tourbook")
os.environ.setdefault("SITE_URL", "https://tours.example.com")
os.environ.setdefault("EMAIL_FROM", "bookings@tours.example.com")
os.environ.setdefault("EMAIL_FALLBACK_FROM", "noreply@tours.example.com")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_tourbook")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_tourbook")

# Only set fake credentials for moto if no real credentials are present
if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

TABLE_PREFIX = os.environ["DYNAMODB_TABLE_PREFIX"]
TEST_WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]


# === Singleton Reset ===


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset cached services before and after each test.

    This ensures tests using mock_aws get fresh service instances inside the
    mock context rather than reusing clients from a previous test.
    """
    from tourbook_api.dependencies import reset_services

    reset_services()
    yield
    reset_services()


# === DynamoDB Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


def _create_tables(client: Any) -> None:
    client.create_table(
        TableName=f"{TABLE_PREFIX}-tours",
        KeySchema=[{"AttributeName": "slug", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "slug", "AttributeType": "S"},
            {"AttributeName": "title_lower", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "title_lower-index",
                "KeySchema": [{"AttributeName": "title_lower", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    for suffix, key in (
        ("bookings", "stripe_session_id"),
        ("webhook-events", "event_id"),
        ("invoice-sends", "session_id"),
    ):
        client.create_table(
            TableName=f"{TABLE_PREFIX}-{suffix}",
            KeySchema=[{"AttributeName": key, "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": key, "AttributeType": "S"}],
            BillingMode="PAY_PER_REQUEST",
        )


@pytest.fixture
def dynamodb_tables(aws_credentials: None) -> Generator[Any, None, None]:
    """Create all pipeline tables in a mocked DynamoDB and yield the resource."""
    with mock_aws():
        _create_tables(boto3.client("dynamodb", region_name="eu-west-1"))
        yield boto3.resource("dynamodb", region_name="eu-west-1")


@pytest.fixture
def db(dynamodb_tables: Any) -> Any:
    """DynamoDBService bound to the mocked tables."""
    from tourbook.services.dynamodb import DynamoDBService

    return DynamoDBService(table_prefix=TABLE_PREFIX)


@pytest.fixture
def table(dynamodb_tables: Any) -> Callable[[str], Any]:
    """Return a boto3 Table for a table suffix, e.g. table("bookings")."""

    def _table(suffix: str) -> Any:
        return dynamodb_tables.Table(f"{TABLE_PREFIX}-{suffix}")

    return _table


# === Sample Data Fixtures ===


@pytest.fixture
def future_date() -> str:
    """A tour date safely in the future."""
    from tourbook.models.checkout import utc_today

    return (utc_today() + timedelta(days=30)).isoformat()


@pytest.fixture
def booking_payload(future_date: str) -> dict[str, Any]:
    """Valid raw booking request."""
    return {
        "tour": {"slug": "guatape-day-trip", "title": "Guatapé Day Trip", "price": 1},
        "quantity": 3,
        "customer": {"email": "Ana.Gomez@Example.com", "name": "Ana Gómez"},
        "date": future_date,
        "phone": "+57 300 000 0000",
        "currency": "cop",
        "locale": "es-CO",
    }


def build_session_object(
    session_id: str = "cs_test_a1b2c3d4e5f6",
    *,
    payment_status: str = "paid",
    status: str = "complete",
    payment_intent: str | None = "pi_test_123",
    amount_total: int | None = 21000,
    email: str | None = "ana.gomez@example.com",
    metadata: dict[str, str] | None = None,
) -> dict[str, Any]:
    """A Checkout Session object as delivered in webhook payloads."""
    return {
        "id": session_id,
        "object": "checkout.session",
        "payment_status": payment_status,
        "status": status,
        "amount_total": amount_total,
        "currency": "usd",
        "payment_intent": payment_intent,
        "created": 1767225600,
        "customer_email": email,
        "customer_details": {"email": email, "name": "Ana Gómez", "phone": "+573000000000"},
        "metadata": metadata
        if metadata is not None
        else {
            "tour_slug": "guatape-day-trip",
            "tour_title": "Guatapé Day Trip",
            "tour_id": "t_003",
            "date": "2026-12-01",
            "quantity": "3",
            "customer_name": "Ana Gómez",
            "phone": "+57 300 000 0000",
            "origin_currency": "COP",
            "catalog_currency": "COP",
            "catalog_price": "280000",
        },
    }


def build_event(
    event_type: str,
    obj: dict[str, Any],
    event_id: str = "evt_test_0001",
) -> dict[str, Any]:
    """A Stripe event envelope."""
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "data": {"object": obj},
    }


@pytest.fixture
def session_object() -> Callable[..., dict[str, Any]]:
    return build_session_object


@pytest.fixture
def make_event() -> Callable[..., dict[str, Any]]:
    return build_event


# === Stripe Signature Fixtures ===


def sign_payload(payload: bytes, secret: str = TEST_WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Create a valid Stripe-Signature header.

    Stripe signatures use HMAC-SHA256 with format: t={timestamp},v1={signature}
    """
    ts = str(timestamp if timestamp is not None else int(time.time()))
    signed_payload = f"{ts}.{payload.decode('utf-8')}"
    signature = hmac.new(
        secret.encode("utf-8"),
        signed_payload.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={ts},v1={signature}"


@pytest.fixture
def signed_request() -> Callable[..., tuple[bytes, dict[str, str]]]:
    """Serialize an event and build headers carrying a valid signature."""

    def _signed(event: dict[str, Any], secret: str = TEST_WEBHOOK_SECRET) -> tuple[bytes, dict[str, str]]:
        payload = json.dumps(event).encode("utf-8")
        return payload, {
            "Stripe-Signature": sign_payload(payload, secret),
            "Content-Type": "application/json",
        }

    return _signed


@pytest.fixture
def stripe_signature() -> Callable[..., str]:
    """Return the Stripe-Signature header builder."""
    return sign_payload
