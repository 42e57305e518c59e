"""Standard error codes for the tour booking backend.

Every error surfaced to an HTTP client is rendered from an ErrorCode so the
response shape stays the same across checkout, webhook and invoice routes.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Standard error codes."""

    # Booking request error codes (ERR_001-ERR_004)
    INVALID_REQUEST = "ERR_001"
    DATE_IN_PAST = "ERR_002"
    TOUR_NOT_FOUND = "ERR_003"
    BOOKING_NOT_FOUND = "ERR_004"

    # Stripe/Payment error codes (ERR_STRIPE_001-ERR_STRIPE_005)
    INVALID_WEBHOOK_SIGNATURE = "ERR_STRIPE_001"
    STRIPE_API_ERROR = "ERR_STRIPE_002"
    WEBHOOK_PROCESSING_FAILED = "ERR_STRIPE_003"
    STRIPE_NOT_CONFIGURED = "ERR_STRIPE_004"
    INVALID_WEBHOOK_PAYLOAD = "ERR_STRIPE_005"

    # Invoice error codes
    INVOICE_RENDER_FAILED = "ERR_INVOICE_001"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_REQUEST: "Invalid booking request",
    ErrorCode.DATE_IN_PAST: "Tour date must be today or later",
    ErrorCode.TOUR_NOT_FOUND: "Tour not found",
    ErrorCode.BOOKING_NOT_FOUND: "Booking not found",
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Invalid webhook signature",
    ErrorCode.STRIPE_API_ERROR: "Payment provider error",
    ErrorCode.WEBHOOK_PROCESSING_FAILED: "Webhook processing failed",
    ErrorCode.STRIPE_NOT_CONFIGURED: "Payment provider is not configured",
    ErrorCode.INVALID_WEBHOOK_PAYLOAD: "Malformed webhook payload",
    ErrorCode.INVOICE_RENDER_FAILED: "Failed to render invoice",
}

# Recovery suggestions for clients and operators
ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.INVALID_REQUEST: "Correct the highlighted field and submit again",
    ErrorCode.DATE_IN_PAST: "Choose today or a future date",
    ErrorCode.TOUR_NOT_FOUND: "Check the tour slug or title against the catalog",
    ErrorCode.BOOKING_NOT_FOUND: "Verify the checkout session ID",
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Verify webhook secret configuration",
    ErrorCode.STRIPE_API_ERROR: "Try again or contact support",
    ErrorCode.WEBHOOK_PROCESSING_FAILED: "The provider will retry; inspect the webhook-events table",
    ErrorCode.STRIPE_NOT_CONFIGURED: "Set the Stripe secret key and webhook secret",
    ErrorCode.INVALID_WEBHOOK_PAYLOAD: "Check the webhook endpoint API version",
    ErrorCode.INVOICE_RENDER_FAILED: "Try downloading the invoice again later",
}


class ErrorResponse(BaseModel):
    """Standard error body returned by every API route."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error: str
    code: str
    recovery: Optional[str] = None
    details: Optional[dict[str, Any]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, Any]] = None,
        message: Optional[str] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code.

        Args:
            code: The error code
            details: Optional additional context about the error
            message: Optional message overriding the default for the code

        Returns:
            An ErrorResponse with the message and recovery hint for the code.
        """
        return cls(
            error=message or ERROR_MESSAGES[code],
            code=code.value,
            recovery=ERROR_RECOVERY[code],
            details=details,
        )


class BookingError(Exception):
    """Exception raised by booking pipeline operations.

    Caught by the API exception handlers and rendered as an ErrorResponse.
    """

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, Any]] = None,
        message: Optional[str] = None,
        http_status: Optional[int] = None,
    ):
        self.code = code
        self.message = message or ERROR_MESSAGES[code]
        self.recovery = ERROR_RECOVERY[code]
        self.details = details
        self.http_status = http_status
        super().__init__(self.message)

    def to_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse body."""
        return ErrorResponse.from_code(self.code, self.details, self.message)


# Stripe error code to user-friendly message mapping
STRIPE_ERROR_MESSAGES: dict[str, str] = {
    "amount_too_small": "The booking amount is below the payment minimum.",
    "amount_too_large": "The booking amount exceeds the payment maximum.",
    "parameter_invalid_integer": "The booking amount is invalid.",
    "url_invalid": "The checkout redirect URL is invalid.",
    "processing_error": "A processing error occurred. Please try again.",
    "rate_limit": "Too many requests. Please wait a moment and try again.",
}

# Stripe error codes that indicate the request may succeed on retry
STRIPE_RETRYABLE_ERRORS: set[str] = {
    "processing_error",
    "rate_limit",
    "lock_timeout",
    "api_connection_error",
}


def get_user_friendly_stripe_message(
    stripe_error_code: Optional[str],
    default_message: str = "Payment could not be started. Please try again.",
) -> str:
    """Get a user-friendly message for a Stripe error code.

    Args:
        stripe_error_code: The Stripe error code (e.g., 'amount_too_small').
        default_message: Message to use if error code is unknown.

    Returns:
        User-friendly error message.
    """
    if stripe_error_code and stripe_error_code in STRIPE_ERROR_MESSAGES:
        return STRIPE_ERROR_MESSAGES[stripe_error_code]
    return default_message


def is_stripe_error_retryable(stripe_error_code: Optional[str]) -> bool:
    """Check if a Stripe error is likely transient and retryable."""
    return stripe_error_code in STRIPE_RETRYABLE_ERRORS if stripe_error_code else False
