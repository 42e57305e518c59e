"""Booking model and state transition result."""

from typing import Any

from pydantic import BaseModel, Field

from .enums import BookingStatus, BookingTrigger


class Booking(BaseModel):
    """A tour booking reconciled from Stripe Checkout events.

    One row per stripe_session_id. Amounts are stored in provider minor units.
    Timestamps are ISO-8601 strings as stored in DynamoDB.
    """

    stripe_session_id: str = Field(
        ...,
        description="Stripe Checkout Session ID (cs_xxx); unique key",
        examples=["cs_test_a1b2c3"],
    )
    booking_id: str = Field(..., description="Internal booking ID", examples=["BK-3F9A1C2E7B"])
    status: BookingStatus
    tour_id: str | None = None
    tour_slug: str | None = None
    tour_title: str | None = None
    date: str | None = Field(default=None, description="Tour date (YYYY-MM-DD)")
    persons: int | None = Field(default=None, ge=1)
    total: int | None = Field(default=None, ge=0, description="Amount total in minor units")
    currency: str | None = None
    origin_currency: str | None = None
    catalog_price: int | None = None
    payment_intent_id: str | None = None
    customer_email: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    created_at: str
    updated_at: str

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "Booking":
        """Build a Booking from a DynamoDB item (numbers come back as Decimal)."""
        data = dict(item)
        for key in ("persons", "total", "catalog_price"):
            if data.get(key) is not None:
                data[key] = int(data[key])
        return cls.model_validate(data)


class TransitionResult(BaseModel):
    """Outcome of applying a trigger to a booking."""

    session_id: str
    trigger: BookingTrigger
    previous_status: BookingStatus | None = None
    new_status: BookingStatus | None = None
    applied: bool = Field(..., description="True when the booking row was written")
    reason: str | None = Field(default=None, description="Why the trigger was not applied")
    booking: Booking | None = None

    @property
    def is_paid(self) -> bool:
        return self.new_status == BookingStatus.PAID
