"""FastAPI dependency injection providers for shared services.

Each provider returns a process-scoped instance (cached with @lru_cache in
this module or in tourbook.services) so Lambda warm starts reuse SDK
clients. Routes receive services through Depends(); tests override them
with app.dependency_overrides or reset them with reset_services().

Service Dependency Graph:
    Settings (get_settings)
    DynamoDBService (singleton via get_dynamodb_service)
        ├── BookingStore
        ├── NotificationService ── EmailService
        └── WebhookHandler ── BookingStore, StripeService, NotificationService
    CatalogService ─┐
    StripeService ──┴── CheckoutService

Testing:
    Use reset_services() to clear cached instances between tests.
"""

from functools import lru_cache

from tourbook.config import Settings, get_settings
from tourbook.services import (
    BookingStore,
    CheckoutService,
    NotificationService,
    StripeService,
    WebhookHandler,
    get_booking_store,
    get_catalog_service,
    get_email_service,
    get_notification_service,
    get_ssm_service,
    get_stripe_service,
    get_webhook_handler,
    reset_dynamodb_service,
)


def get_app_settings() -> Settings:
    return get_settings()


@lru_cache
def get_checkout_service() -> CheckoutService:
    """Get cached CheckoutService instance.

    Returns:
        CheckoutService configured with the catalog and Stripe singletons.
    """
    return CheckoutService(catalog=get_catalog_service(), stripe_service=get_stripe_service())


def get_stripe() -> StripeService:
    return get_stripe_service()


def get_bookings() -> BookingStore:
    return get_booking_store()


def get_webhooks() -> WebhookHandler:
    return get_webhook_handler()


def get_notifications() -> NotificationService:
    return get_notification_service()


def reset_services() -> None:
    """Clear all cached service instances.

    Call this in test fixtures to ensure clean state between tests.
    Also resets the underlying DynamoDB singleton and cached settings.
    """
    get_checkout_service.cache_clear()
    get_webhook_handler.cache_clear()
    get_notification_service.cache_clear()
    get_email_service.cache_clear()
    get_booking_store.cache_clear()
    get_catalog_service.cache_clear()
    get_stripe_service.cache_clear()
    get_ssm_service.cache_clear()
    get_settings.cache_clear()

    reset_dynamodb_service()
