"""Webhook endpoint response models."""

from pydantic import BaseModel, Field


class WebhookResponse(BaseModel):
    """Standard webhook acknowledgement."""

    received: bool
    event_id: str | None = None
    event_type: str | None = None
    processing_result: str = Field(
        ...,
        description="success, duplicate, skipped or error",
        examples=["success"],
    )
    message: str | None = None


class WebhookHealthResponse(BaseModel):
    """Webhook configuration health."""

    ok: bool
    webhook_secret: bool
    stripe_key: bool
