"""Business services for the tour booking pipeline."""

from .booking_store import BookingStore, BookingStoreError, get_booking_store
from .catalog import CatalogService, CatalogUnavailableError, get_catalog_service
from .checkout import CheckoutService
from .currency import format_minor_amount, to_provider_minor_units
from .dynamodb import DynamoDBService, get_dynamodb_service, reset_dynamodb_service
from .email_service import EmailService, EmailServiceError, get_email_service
from .invoice import InvoiceData, InvoiceRenderError, build_invoice_filename, render_invoice_pdf
from .notification_service import NotificationService, get_notification_service
from .ssm_service import SSMService, SSMServiceError, get_ssm_service
from .stripe_service import (
    StripeNotConfiguredError,
    StripeService,
    StripeServiceError,
    WebhookPayloadError,
    WebhookSignatureError,
    get_stripe_service,
)
from .webhook_handler import WebhookHandler, WebhookOutcome, get_webhook_handler

__all__ = [
    "BookingStore",
    "BookingStoreError",
    "CatalogService",
    "CatalogUnavailableError",
    "CheckoutService",
    "DynamoDBService",
    "EmailService",
    "EmailServiceError",
    "InvoiceData",
    "InvoiceRenderError",
    "NotificationService",
    "SSMService",
    "SSMServiceError",
    "StripeNotConfiguredError",
    "StripeService",
    "StripeServiceError",
    "WebhookHandler",
    "WebhookOutcome",
    "WebhookPayloadError",
    "WebhookSignatureError",
    "build_invoice_filename",
    "format_minor_amount",
    "get_booking_store",
    "get_catalog_service",
    "get_dynamodb_service",
    "get_email_service",
    "get_notification_service",
    "get_ssm_service",
    "get_stripe_service",
    "get_webhook_handler",
    "render_invoice_pdf",
    "reset_dynamodb_service",
    "to_provider_minor_units",
]
