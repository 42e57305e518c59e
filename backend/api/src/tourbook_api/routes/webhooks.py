"""Webhook endpoints for the payment provider.

Provides endpoints for:
- Stripe webhook events (checkout session lifecycle, payment intents, refunds)
- A configuration health check

These endpoints do NOT require authentication: the POST body is verified
against the Stripe-Signature header using the webhook signing secret.
"""

from fastapi import APIRouter, Depends, Request

from tourbook.config import Settings
from tourbook.models import BookingError, ErrorCode, ErrorResponse, ProcessingResult
from tourbook.services import (
    StripeNotConfiguredError,
    StripeService,
    WebhookHandler,
    WebhookPayloadError,
    WebhookSignatureError,
)
from tourbook.utils.logging import get_logger, log_webhook_event

from tourbook_api.dependencies import get_app_settings, get_stripe, get_webhooks
from tourbook_api.models import WebhookHealthResponse, WebhookResponse

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])

WEBHOOK_PATH = "/webhooks/payments"
SIGNATURE_HEADER = "Stripe-Signature"


@router.post(
    WEBHOOK_PATH,
    summary="Receive Stripe webhook events",
    description="""
Endpoint for Stripe webhook events. Handles:
- checkout.session.completed / async_payment_succeeded: records the booking (pending or paid)
- checkout.session.expired: cancels a pending booking
- payment_intent.succeeded: marks the linked session's booking paid
- charge.refunded: cancels the booking
- payment failures: audited only

**No authentication required** - signature is verified using the Stripe webhook secret.

**Idempotent**: Duplicate events (same event_id) return 200 with 'duplicate' result.
""",
    response_model=WebhookResponse,
    responses={
        200: {"description": "Event received and processed (or acknowledged)", "model": WebhookResponse},
        400: {"description": "Invalid signature, missing header or malformed event", "model": ErrorResponse},
        500: {"description": "Processing failed; the provider should retry", "model": ErrorResponse},
    },
)
async def handle_stripe_webhook(
    request: Request,
    stripe_service: StripeService = Depends(get_stripe),
    handler: WebhookHandler = Depends(get_webhooks),
    settings: Settings = Depends(get_app_settings),
) -> WebhookResponse:
    """Verify, deduplicate and process one Stripe event."""
    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        logger.warning("Webhook request missing %s header", SIGNATURE_HEADER)
        raise BookingError(
            code=ErrorCode.INVALID_WEBHOOK_SIGNATURE,
            details={"message": f"Missing {SIGNATURE_HEADER} header"},
        )

    # Raw body: signature is computed over the exact bytes
    payload = await request.body()

    try:
        event = stripe_service.verify_webhook_signature(payload, signature)
    except StripeNotConfiguredError as e:
        if settings.is_production:
            raise BookingError(code=ErrorCode.STRIPE_NOT_CONFIGURED) from e
        logger.warning("Webhook secret not configured; event acknowledged without processing")
        return WebhookResponse(
            received=True,
            processing_result=ProcessingResult.SKIPPED.value,
            message="Webhook secret not configured",
        )
    except WebhookSignatureError as e:
        raise BookingError(
            code=ErrorCode.INVALID_WEBHOOK_SIGNATURE,
            details={"message": "Invalid webhook signature"},
        ) from e
    except WebhookPayloadError as e:
        raise BookingError(
            code=ErrorCode.INVALID_WEBHOOK_PAYLOAD,
            details={"message": str(e)},
        ) from e

    event_id = event["id"]
    event_type = event["type"]
    log_webhook_event(logger, event_type, event_id, result=ProcessingResult.RECEIVED.value)

    try:
        outcome = handler.process_event(event, StripeService.compute_payload_hash(payload))
    except WebhookPayloadError as e:
        raise BookingError(
            code=ErrorCode.INVALID_WEBHOOK_PAYLOAD,
            details={"event_id": event_id, "message": str(e)},
        ) from e
    except Exception as e:
        logger.exception("Webhook %s (%s) processing failed", event_id, event_type)
        if settings.is_production:
            raise BookingError(
                code=ErrorCode.WEBHOOK_PROCESSING_FAILED,
                details={"event_id": event_id, "event_type": event_type},
            ) from e
        return WebhookResponse(
            received=True,
            event_id=event_id,
            event_type=event_type,
            processing_result=ProcessingResult.ERROR.value,
            message=str(e)[:500],
        )

    return WebhookResponse(
        received=True,
        event_id=outcome.event_id,
        event_type=outcome.event_type,
        processing_result=outcome.processing_result.value,
        message=outcome.message,
    )


@router.get(
    WEBHOOK_PATH,
    summary="Webhook configuration health",
    description="Report whether the Stripe API key and webhook signing secret are available.",
    response_model=WebhookHealthResponse,
)
async def webhook_health(
    stripe_service: StripeService = Depends(get_stripe),
) -> WebhookHealthResponse:
    status = stripe_service.is_configured()
    return WebhookHealthResponse(
        ok=all(status.values()),
        webhook_secret=status["webhook_secret"],
        stripe_key=status["stripe_key"],
    )
