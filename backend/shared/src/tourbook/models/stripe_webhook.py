"""Stripe webhook event model for idempotency and auditing."""

from pydantic import BaseModel, ConfigDict, Field

from .enums import ProcessingResult


class StripeWebhookEvent(BaseModel):
    """Ledger record of a received Stripe webhook event.

    Used for:
    - Idempotency: an event ID is processed at most once
    - Auditing: every delivery leaves a record with its outcome
    - Debugging: operators can replay events that ended in error
    """

    model_config = ConfigDict(use_enum_values=True)

    event_id: str = Field(
        ...,
        description="Stripe event ID (evt_xxx)",
        examples=["evt_1ABC123DEF456"],
    )
    event_type: str = Field(
        ...,
        description="Stripe event type",
        examples=["checkout.session.completed", "charge.refunded"],
    )
    received_at: str = Field(..., description="When the event was first claimed (ISO-8601)")
    processed_at: str | None = Field(
        default=None,
        description="When processing finished (ISO-8601)",
    )
    payload_hash: str = Field(
        ...,
        description="SHA-256 hash of the raw payload",
        examples=["a1b2c3d4e5f6..."],
    )
    session_id: str | None = Field(
        default=None,
        description="Associated checkout session ID",
    )
    booking_status: str | None = Field(
        default=None,
        description="Booking status after processing",
    )
    processing_result: ProcessingResult = Field(
        default=ProcessingResult.RECEIVED,
        description="received, success, skipped or error",
    )
    message: str | None = Field(
        default=None,
        description="Human-readable outcome or error details",
    )
    attempts: int = Field(default=1, ge=1, description="Number of deliveries claimed")
