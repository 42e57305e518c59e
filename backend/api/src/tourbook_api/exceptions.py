"""FastAPI exception handlers for converting domain errors to HTTP responses.

Every error leaves the API with the same JSON body (ErrorResponse):

    {"success": false, "error": "...", "code": "ERR_...", "recovery": "...", "details": {...}}

The ErrorCode-to-HTTP status mapping follows REST conventions:
- 400 Bad Request: Validation failures, bad webhook signature or payload
- 404 Not Found: Unknown tour or booking
- 500 Internal Server Error: Configuration and processing failures
- 502 Bad Gateway: Payment provider failures not caused by the request

Usage:
    Register handlers in FastAPI app:

    from tourbook_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_402_PAYMENT_REQUIRED,
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
)

from tourbook.models import BookingError, ErrorCode, ErrorResponse, first_validation_error
from tourbook.models.errors import get_user_friendly_stripe_message, is_stripe_error_retryable
from tourbook.services import BookingStoreError, StripeNotConfiguredError, StripeServiceError

logger = logging.getLogger(__name__)

# Map ErrorCode to HTTP status codes
ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    # Request validation -> 400 Bad Request
    ErrorCode.INVALID_REQUEST: HTTP_400_BAD_REQUEST,
    ErrorCode.DATE_IN_PAST: HTTP_400_BAD_REQUEST,
    # Not found errors -> 404 Not Found
    ErrorCode.TOUR_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.BOOKING_NOT_FOUND: HTTP_404_NOT_FOUND,
    # Webhook authentication and parsing -> 400 (provider must not retry blindly)
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_WEBHOOK_PAYLOAD: HTTP_400_BAD_REQUEST,
    # Provider failures -> 502 Bad Gateway
    ErrorCode.STRIPE_API_ERROR: HTTP_502_BAD_GATEWAY,
    # Server-side issues -> 500
    ErrorCode.WEBHOOK_PROCESSING_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.STRIPE_NOT_CONFIGURED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.INVOICE_RENDER_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
}

# Provider statuses that mean the request itself was wrong
CLIENT_CAUSED_PROVIDER_STATUSES = {HTTP_400_BAD_REQUEST, HTTP_402_PAYMENT_REQUIRED, HTTP_404_NOT_FOUND}


def get_http_status_for_error(code: ErrorCode) -> int:
    """Get HTTP status code for an ErrorCode.

    Args:
        code: The ErrorCode to map

    Returns:
        HTTP status code, defaults to 400 if not explicitly mapped.
    """
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_400_BAD_REQUEST)


def error_response(
    status_code: int,
    code: ErrorCode,
    details: dict | None = None,
    message: str | None = None,
) -> JSONResponse:
    body = ErrorResponse.from_code(code, details, message)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    """Handle BookingError exceptions and convert to JSON response.

    The exception's own http_status wins over the code mapping.
    """
    status_code = exc.http_status or get_http_status_for_error(exc.code)
    return JSONResponse(
        status_code=status_code,
        content=exc.to_response().model_dump(mode="json"),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI body validation failures as 400 with the first message."""
    errors = list(exc.errors())
    code, message, field = first_validation_error(errors)
    return error_response(
        HTTP_400_BAD_REQUEST,
        code,
        details={"field": field},
        message=message,
    )


async def stripe_error_handler(request: Request, exc: StripeServiceError) -> JSONResponse:
    """Handle payment provider failures.

    Client-caused provider errors keep their 4xx status; everything else is
    reported as 502. The provider code is always passed through in details.
    """
    if isinstance(exc, StripeNotConfiguredError):
        logger.error("Stripe is not configured: %s", exc)
        return error_response(HTTP_500_INTERNAL_SERVER_ERROR, ErrorCode.STRIPE_NOT_CONFIGURED)

    if exc.http_status in CLIENT_CAUSED_PROVIDER_STATUSES:
        status_code = exc.http_status
    else:
        status_code = HTTP_502_BAD_GATEWAY

    return error_response(
        status_code,
        ErrorCode.STRIPE_API_ERROR,
        details={
            "stripe_error_code": exc.stripe_error_code,
            "retryable": is_stripe_error_retryable(exc.stripe_error_code),
        },
        message=get_user_friendly_stripe_message(exc.stripe_error_code),
    )


async def booking_store_error_handler(request: Request, exc: BookingStoreError) -> JSONResponse:
    logger.error("Booking store failure: %s", exc)
    return error_response(HTTP_500_INTERNAL_SERVER_ERROR, ErrorCode.WEBHOOK_PROCESSING_FAILED)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions with a generic error response.

    Internal details are logged, never returned to the client.
    """
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "An unexpected error occurred",
            "code": "ERR_INTERNAL",
            "recovery": "Please try again later or contact support",
            "details": None,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Args:
        app: The FastAPI application instance.
    """
    app.add_exception_handler(BookingError, booking_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StripeServiceError, stripe_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(BookingStoreError, booking_store_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
