"""Stripe gateway for checkout sessions and webhook verification.

Provides integration with Stripe using the StripeClient pattern.
Credentials come from STRIPE_SECRET_KEY / STRIPE_WEBHOOK_SECRET when set
(local development) and from SSM Parameter Store otherwise.
"""

import hashlib
import json
import logging
import os
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import stripe
from stripe import StripeClient

from tourbook.config import get_settings
from tourbook.models import CheckoutSessionSnapshot

from .ssm_service import SSMServiceError, get_ssm_service

logger = logging.getLogger(__name__)


class StripeServiceError(Exception):
    """Raised when a Stripe operation fails."""

    def __init__(
        self,
        message: str,
        stripe_error_code: str | None = None,
        http_status: int | None = None,
    ) -> None:
        """Initialize with message and optional Stripe error details.

        Args:
            message: Human-readable error message.
            stripe_error_code: Stripe-specific error code if available.
            http_status: HTTP status returned by Stripe if available.
        """
        super().__init__(message)
        self.stripe_error_code = stripe_error_code
        self.http_status = http_status


class StripeNotConfiguredError(StripeServiceError):
    """Raised when the API key or webhook secret is not available."""


class WebhookSignatureError(StripeServiceError):
    """Raised when a webhook signature is missing or does not verify."""


class WebhookPayloadError(StripeServiceError):
    """Raised when a verified webhook body is not a valid event."""


class StripeService:
    """Service for Stripe payment operations.

    Handles:
    - Checkout session creation (with idempotency key)
    - Checkout session retrieval and lookup by payment intent
    - Webhook signature validation

    Usage:
        stripe_svc = get_stripe_service()
        session = stripe_svc.create_checkout_session(
            params={"mode": "payment", ...},
            idempotency_key="checkout_3f1a...",
        )
    """

    def __init__(
        self,
        environment: str | None = None,
        secret_key: str | None = None,
        webhook_secret: str | None = None,
    ) -> None:
        """Initialize Stripe service.

        Args:
            environment: Environment name used for SSM paths. Defaults to Settings.
            secret_key: Explicit API key. Defaults to STRIPE_SECRET_KEY, then SSM.
            webhook_secret: Explicit signing secret. Defaults to STRIPE_WEBHOOK_SECRET, then SSM.
        """
        self._environment = environment or get_settings().environment
        self._secret_key = secret_key or os.environ.get("STRIPE_SECRET_KEY") or None
        self._webhook_secret = webhook_secret or os.environ.get("STRIPE_WEBHOOK_SECRET") or None
        self._client: StripeClient | None = None

    def _parameter_path(self, name: str) -> str:
        return f"/tourbook/{self._environment}/stripe/{name}"

    def _get_client(self) -> StripeClient:
        """Get or create the Stripe client (lazy initialization).

        Raises:
            StripeNotConfiguredError: If the API key cannot be retrieved.
        """
        if self._client is None:
            if self._secret_key is None:
                try:
                    self._secret_key = get_ssm_service().get_parameter(
                        self._parameter_path("secret_key")
                    )
                except SSMServiceError as e:
                    raise StripeNotConfiguredError(
                        f"Failed to initialize Stripe client: {e}"
                    ) from e
            self._client = StripeClient(self._secret_key)
            logger.info("Stripe client initialized for environment: %s", self._environment)
        return self._client

    def _get_webhook_secret(self) -> str:
        """Get the webhook signing secret.

        Raises:
            StripeNotConfiguredError: If the secret cannot be retrieved.
        """
        if self._webhook_secret is None:
            try:
                self._webhook_secret = get_ssm_service().get_parameter(
                    self._parameter_path("webhook_secret")
                )
            except SSMServiceError as e:
                raise StripeNotConfiguredError(f"Failed to get webhook secret: {e}") from e
        return self._webhook_secret

    def is_configured(self) -> dict[str, bool]:
        """Report which credentials are available, without raising."""
        status = {}
        for name, getter in (("stripe_key", self._get_client), ("webhook_secret", self._get_webhook_secret)):
            try:
                getter()
                status[name] = True
            except StripeNotConfiguredError:
                status[name] = False
        return status

    @staticmethod
    def _wrap_error(action: str, e: stripe.StripeError) -> StripeServiceError:
        error_code = getattr(e, "code", None)
        http_status = getattr(e, "http_status", None)
        logger.error(
            "Stripe %s failed: %s (code: %s, status: %s)",
            action,
            e.user_message or str(e),
            error_code,
            http_status,
        )
        return StripeServiceError(
            f"Failed to {action}: {e.user_message or e}",
            stripe_error_code=error_code,
            http_status=http_status,
        )

    def create_checkout_session(
        self,
        *,
        params: dict[str, Any],
        idempotency_key: str,
    ) -> dict[str, Any]:
        """Create a Stripe Checkout session.

        Args:
            params: Session creation parameters.
            idempotency_key: Key Stripe uses to collapse retried requests.

        Returns:
            Dict with session details:
                - session_id: Stripe checkout session ID
                - checkout_url: URL to redirect user
                - expires_at: When session expires
                - payment_intent_id: PaymentIntent ID if already created

        Raises:
            StripeServiceError: If session creation fails.
        """
        client = self._get_client()

        try:
            session = client.checkout.sessions.create(
                params=params,  # type: ignore[arg-type]
                options={"idempotency_key": idempotency_key},
            )
        except stripe.StripeError as e:
            raise self._wrap_error("create checkout session", e) from e

        logger.info("Checkout session created: %s", session.id)

        return {
            "session_id": session.id,
            "checkout_url": session.url,
            "expires_at": datetime.fromtimestamp(session.expires_at, tz=timezone.utc),
            "payment_intent_id": session.payment_intent,
        }

    def retrieve_checkout_session(self, session_id: str) -> CheckoutSessionSnapshot:
        """Retrieve a Checkout session by ID.

        Raises:
            StripeServiceError: If the session cannot be retrieved.
        """
        client = self._get_client()
        try:
            session = client.checkout.sessions.retrieve(session_id)
        except stripe.StripeError as e:
            raise self._wrap_error("retrieve checkout session", e) from e
        return CheckoutSessionSnapshot.from_stripe(session)

    def find_session_by_payment_intent(
        self, payment_intent_id: str
    ) -> CheckoutSessionSnapshot | None:
        """Find the Checkout session that created a PaymentIntent.

        Returns:
            The session snapshot, or None if the intent has no session.

        Raises:
            StripeServiceError: If the lookup call fails.
        """
        client = self._get_client()
        try:
            sessions = client.checkout.sessions.list(
                params={"payment_intent": payment_intent_id, "limit": 1}
            )
        except stripe.StripeError as e:
            raise self._wrap_error("list checkout sessions", e) from e

        if not sessions.data:
            logger.info("No checkout session found for PaymentIntent %s", payment_intent_id)
            return None
        return CheckoutSessionSnapshot.from_stripe(sessions.data[0])

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Verify a webhook signature and parse the event.

        Args:
            payload: Raw request body bytes.
            signature: Stripe-Signature header value.

        Returns:
            Parsed event as a plain dictionary.

        Raises:
            StripeNotConfiguredError: If the signing secret is unavailable.
            WebhookSignatureError: If the signature is invalid.
            WebhookPayloadError: If the body is not a valid event.
        """
        webhook_secret = self._get_webhook_secret()

        try:
            stripe.Webhook.construct_event(payload, signature, webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise WebhookSignatureError("Invalid webhook signature") from e
        except ValueError as e:
            logger.warning("Invalid webhook payload: %s", str(e))
            raise WebhookPayloadError("Invalid webhook payload") from e

        event = json.loads(payload)
        if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
            raise WebhookPayloadError("Webhook payload is missing id or type")

        logger.info("Webhook signature verified for event: %s", event["id"])
        return event

    @staticmethod
    def compute_payload_hash(payload: bytes) -> str:
        """Compute SHA-256 hash of a webhook payload for the audit trail."""
        return hashlib.sha256(payload).hexdigest()


@lru_cache(maxsize=1)
def get_stripe_service() -> StripeService:
    """Get the shared StripeService instance."""
    return StripeService()
