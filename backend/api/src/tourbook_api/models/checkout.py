"""Checkout endpoint response model."""

from pydantic import BaseModel, Field


class CheckoutResponse(BaseModel):
    """Redirect target for a newly created checkout session."""

    url: str = Field(..., description="Hosted checkout URL (or mock success URL)")
    session_id: str | None = Field(
        default=None,
        description="Checkout session ID; absent in mock mode",
        examples=["cs_test_a1b2c3"],
    )
    request_id: str = Field(..., description="Correlation ID of this request")
