"""Checkout session builder.

Turns a validated BookingRequest into a Stripe Checkout session:

1. resolve the tour from the catalog (the only source of price and title)
2. convert the catalog price to provider minor units
3. build return URLs, metadata, expiry, locale and idempotency key
4. create the session through StripeService

The idempotency key is a hash of the full creation parameters. Every
parameter, including the expiry, is a pure function of the request and a
ten-minute dedup window, so a retried or double-submitted request inside the
window sends byte-identical parameters and Stripe returns the same session.
"""

import hashlib
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

from tourbook.config import (
    MAX_SESSION_EXPIRY_MINUTES,
    Settings,
    clamp_session_expiry,
    get_settings,
)
from tourbook.models import (
    BookingRequest,
    CatalogEntry,
    CheckoutSessionResult,
    SessionMetadata,
)
from tourbook.utils.logging import log_checkout_operation

from .catalog import CatalogService
from .currency import to_provider_minor_units
from .stripe_service import StripeService, StripeServiceError

logger = logging.getLogger(__name__)

SESSION_ID_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"
IDEMPOTENCY_KEY_PREFIX = "checkout_"
CLIENT_REFERENCE_MAX = 200
DEDUP_WINDOW = timedelta(minutes=10)

# Language prefix -> Stripe Checkout locale
STRIPE_LOCALES: dict[str, str] = {
    "es": "es-419",
    "en": "en",
    "pt": "pt-BR",
    "fr": "fr",
    "de": "de",
    "it": "it",
}
DEFAULT_STRIPE_LOCALE = "auto"


def infer_stripe_locale(explicit: str | None, accept_language: str | None) -> str:
    """Map an explicit locale or Accept-Language header to a Stripe locale.

    The explicit value wins; otherwise the first Accept-Language tag is used.
    Anything unrecognized maps to "auto".
    """
    candidate = (explicit or "").strip()
    if not candidate and accept_language:
        candidate = accept_language.split(",")[0].split(";")[0].strip()

    language = candidate.lower().replace("_", "-").split("-")[0]
    return STRIPE_LOCALES.get(language, DEFAULT_STRIPE_LOCALE)


def dedup_window_start(now: datetime) -> datetime:
    """Floor a timestamp to the start of its dedup window (UTC)."""
    epoch = int(now.timestamp())
    window = int(DEDUP_WINDOW.total_seconds())
    return datetime.fromtimestamp(epoch - epoch % window, tz=timezone.utc)


def build_idempotency_key(params: dict[str, Any]) -> str:
    """Stable key for one set of session creation parameters.

    Same parameters give the same key, and a key is never reused with
    different parameters, which Stripe would reject.
    """
    canonical = json.dumps(params, sort_keys=True, separators=(",", ":"))
    return IDEMPOTENCY_KEY_PREFIX + hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def build_return_urls(site_url: str, slug: str, date: str, quantity: int) -> tuple[str, str]:
    """Build success and cancel URLs.

    The session placeholder is appended unencoded so Stripe can substitute it.
    """
    query = urlencode({"tour": slug, "date": date, "q": quantity})
    success_url = f"{site_url}/checkout/success?session_id={SESSION_ID_PLACEHOLDER}&{query}"
    cancel_url = f"{site_url}/checkout/cancel?{query}"
    return success_url, cancel_url


class CheckoutService:
    """Create hosted checkout sessions for validated booking requests."""

    def __init__(
        self,
        catalog: CatalogService,
        stripe_service: StripeService,
        settings: Settings | None = None,
    ) -> None:
        """Initialize checkout service.

        Args:
            catalog: Catalog resolver
            stripe_service: Stripe gateway
            settings: Configuration. Defaults to the process settings.
        """
        self.catalog = catalog
        self.stripe = stripe_service
        self.settings = settings or get_settings()

    def build_metadata(self, request: BookingRequest, entry: CatalogEntry) -> SessionMetadata:
        """Everything needed to rebuild the booking from a webhook payload."""
        return SessionMetadata(
            tour_slug=entry.slug,
            tour_title=entry.title,
            tour_id=entry.id,
            date=request.date,
            quantity=request.quantity,
            customer_name=request.customer.name,
            phone=request.phone,
            origin_currency=request.currency,
            catalog_currency=self.settings.catalog_currency,
            catalog_price=entry.price,
        )

    def build_session_params(
        self,
        request: BookingRequest,
        entry: CatalogEntry,
        *,
        unit_amount: int,
        success_url: str,
        cancel_url: str,
        locale: str,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Assemble Checkout Session creation parameters.

        The expiry is counted from the end of the dedup window containing
        ``now``, so it is the same for every call inside that window and
        always at least the configured lifetime away.
        """
        window_end = dedup_window_start(now or datetime.now(timezone.utc)) + DEDUP_WINDOW
        window_minutes = int(DEDUP_WINDOW.total_seconds() // 60)
        expiry_minutes = min(
            clamp_session_expiry(self.settings.session_expiry_minutes),
            MAX_SESSION_EXPIRY_MINUTES - window_minutes,
        )
        expires_at = int((window_end + timedelta(minutes=expiry_minutes)).timestamp())

        email = request.customer.normalized_email
        metadata = self.build_metadata(request, entry).to_stripe()
        description = f"{entry.summary or entry.title} | Date: {request.date}"
        client_reference_id = f"{entry.slug}:{request.date}:{email}"

        return {
            "mode": "payment",
            "customer_email": email,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": client_reference_id[:CLIENT_REFERENCE_MAX],
            "locale": locale,
            "phone_number_collection": {"enabled": not request.phone},
            "allow_promotion_codes": True,
            "customer_creation": "always",
            "expires_at": expires_at,
            "after_expiration": {"recovery": {"enabled": True}},
            "line_items": [
                {
                    "quantity": request.quantity,
                    "price_data": {
                        "currency": self.settings.settlement_currency.lower(),
                        "unit_amount": unit_amount,
                        "product_data": {
                            "name": entry.title,
                            "description": description[:500],
                        },
                    },
                }
            ],
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
        }

    def _mock_result(
        self,
        entry: CatalogEntry,
        request: BookingRequest,
        locale: str,
        amount_total: int,
    ) -> CheckoutSessionResult:
        query = urlencode(
            {"mock": 1, "q": request.quantity, "tour": entry.slug, "date": request.date}
        )
        log_checkout_operation(
            logger,
            "create_checkout_session",
            tour_slug=entry.slug,
            amount_minor=amount_total,
            currency=self.settings.settlement_currency,
            mock=True,
        )
        return CheckoutSessionResult(
            url=f"{self.settings.site_url}/checkout/success?{query}",
            locale=locale,
            amount_total=amount_total,
            currency=self.settings.settlement_currency,
            mock=True,
        )

    def create_session(
        self,
        request: BookingRequest,
        accept_language: str | None = None,
        now: datetime | None = None,
    ) -> CheckoutSessionResult:
        """Create a Checkout session for a booking request.

        Args:
            request: Validated booking request
            accept_language: Accept-Language header, used when no explicit locale
            now: Current time. Defaults to the wall clock.

        Returns:
            CheckoutSessionResult with the redirect URL

        Raises:
            BookingError: TOUR_NOT_FOUND when the tour reference does not resolve.
            StripeServiceError: When Stripe rejects the request.
        """
        entry = self.catalog.resolve(slug=request.tour.slug, title=request.tour.title)

        unit_amount = to_provider_minor_units(
            entry.price,
            self.settings.catalog_currency,
            self.settings.settlement_currency,
            self.settings.exchange_rate,
        )
        amount_total = unit_amount * request.quantity
        locale = infer_stripe_locale(request.locale, accept_language)

        if self.settings.stripe_mock:
            return self._mock_result(entry, request, locale, amount_total)

        success_url, cancel_url = build_return_urls(
            self.settings.site_url, entry.slug, request.date, request.quantity
        )
        params = self.build_session_params(
            request,
            entry,
            unit_amount=unit_amount,
            success_url=success_url,
            cancel_url=cancel_url,
            locale=locale,
            now=now,
        )
        idempotency_key = build_idempotency_key(params)

        session = self.stripe.create_checkout_session(params=params, idempotency_key=idempotency_key)
        if not session.get("checkout_url"):
            raise StripeServiceError("Stripe returned a session without a redirect URL")

        log_checkout_operation(
            logger,
            "create_checkout_session",
            session_id=session["session_id"],
            tour_slug=entry.slug,
            amount_minor=amount_total,
            currency=self.settings.settlement_currency,
            quantity=request.quantity,
        )

        return CheckoutSessionResult(
            url=session["checkout_url"],
            session_id=session["session_id"],
            expires_at=session["expires_at"],
            locale=locale,
            idempotency_key=idempotency_key,
            amount_total=amount_total,
            currency=self.settings.settlement_currency,
        )
