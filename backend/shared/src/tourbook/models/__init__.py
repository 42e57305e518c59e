"""Pydantic models for the tour booking pipeline."""

from .booking import Booking, TransitionResult
from .catalog import CatalogEntry
from .checkout import (
    BookingRequest,
    CheckoutSessionResult,
    CustomerInfo,
    TourRef,
    first_validation_error,
    validate_booking_request,
)
from .enums import BookingStatus, BookingTrigger, NotificationResult, ProcessingResult
from .errors import (
    BookingError,
    ErrorCode,
    ErrorResponse,
    ERROR_MESSAGES,
    ERROR_RECOVERY,
    STRIPE_ERROR_MESSAGES,
    STRIPE_RETRYABLE_ERRORS,
    get_user_friendly_stripe_message,
    is_stripe_error_retryable,
)
from .session import CheckoutSessionSnapshot, SessionMetadata
from .stripe_webhook import StripeWebhookEvent

__all__ = [
    # Enums
    "BookingStatus",
    "BookingTrigger",
    "NotificationResult",
    "ProcessingResult",
    # Catalog
    "CatalogEntry",
    # Checkout
    "BookingRequest",
    "CheckoutSessionResult",
    "CustomerInfo",
    "TourRef",
    "first_validation_error",
    "validate_booking_request",
    # Session
    "CheckoutSessionSnapshot",
    "SessionMetadata",
    # Booking
    "Booking",
    "TransitionResult",
    # Errors
    "BookingError",
    "ErrorCode",
    "ErrorResponse",
    "ERROR_MESSAGES",
    "ERROR_RECOVERY",
    "STRIPE_ERROR_MESSAGES",
    "STRIPE_RETRYABLE_ERRORS",
    "get_user_friendly_stripe_message",
    "is_stripe_error_retryable",
    # Stripe
    "StripeWebhookEvent",
]
