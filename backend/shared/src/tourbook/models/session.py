"""Typed views of Stripe Checkout Session data.

Stripe metadata is a flat string-to-string bag. SessionMetadata is the typed
form written when the session is created and parsed back when a webhook
arrives, so the booking can be rebuilt from the webhook payload alone.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Stripe limits metadata values to 500 characters
METADATA_VALUE_MAX = 500


def _to_plain_dict(obj: Any) -> dict[str, Any]:
    """Convert a StripeObject (or plain mapping) into a plain dict."""
    if obj is None:
        return {}
    if isinstance(obj, dict) and type(obj) is dict:
        return obj
    for attr in ("to_dict_recursive", "to_dict"):
        converter = getattr(obj, attr, None)
        if callable(converter):
            return converter()
    return dict(obj)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class SessionMetadata(BaseModel):
    """Booking context attached to a checkout session and its payment intent."""

    model_config = ConfigDict(frozen=True)

    tour_slug: str
    tour_title: str
    tour_id: Optional[str] = None
    date: str
    quantity: int = Field(..., ge=1)
    customer_name: str = ""
    phone: Optional[str] = None
    origin_currency: str = Field(..., description="Currency the client displayed prices in")
    catalog_currency: str = Field(..., description="Reference currency of catalog prices")
    catalog_price: int = Field(..., ge=0, description="Unit price in the catalog currency")

    def to_stripe(self) -> dict[str, str]:
        """Serialize to Stripe's flat string metadata."""
        raw = {
            "tour_slug": self.tour_slug,
            "tour_title": self.tour_title,
            "tour_id": self.tour_id or "",
            "date": self.date,
            "quantity": str(self.quantity),
            "customer_name": self.customer_name,
            "phone": self.phone or "",
            "origin_currency": self.origin_currency,
            "catalog_currency": self.catalog_currency,
            "catalog_price": str(self.catalog_price),
        }
        return {key: value[:METADATA_VALUE_MAX] for key, value in raw.items()}

    @classmethod
    def from_stripe(cls, metadata: Any) -> Optional["SessionMetadata"]:
        """Parse metadata written by to_stripe().

        Returns:
            SessionMetadata, or None when the session was not created by this
            service (required keys missing or unparseable).
        """
        data = _to_plain_dict(metadata)
        quantity = _optional_int(data.get("quantity"))
        catalog_price = _optional_int(data.get("catalog_price"))
        slug = (data.get("tour_slug") or "").strip()
        if not slug or quantity is None or quantity < 1:
            return None

        return cls(
            tour_slug=slug,
            tour_title=data.get("tour_title") or slug,
            tour_id=data.get("tour_id") or None,
            date=data.get("date") or "",
            quantity=quantity,
            customer_name=data.get("customer_name") or "",
            phone=data.get("phone") or None,
            origin_currency=(data.get("origin_currency") or "").upper(),
            catalog_currency=(data.get("catalog_currency") or "").upper(),
            catalog_price=catalog_price if catalog_price is not None and catalog_price >= 0 else 0,
        )


class CheckoutSessionSnapshot(BaseModel):
    """The fields of a Checkout Session the pipeline relies on."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    payment_status: str = Field(default="unpaid", description="paid, unpaid or no_payment_required")
    status: Optional[str] = Field(default=None, description="open, complete or expired")
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    payment_intent_id: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    created: Optional[datetime] = None
    metadata: Optional[SessionMetadata] = None

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    @property
    def is_paid(self) -> bool:
        return self.payment_status in ("paid", "no_payment_required")

    @property
    def recipient_email(self) -> Optional[str]:
        return self.customer_email or None

    @classmethod
    def from_stripe(cls, obj: Any) -> "CheckoutSessionSnapshot":
        """Build a snapshot from a Stripe session object or event payload dict."""
        data = _to_plain_dict(obj)
        details = data.get("customer_details") or {}

        payment_intent = data.get("payment_intent")
        if isinstance(payment_intent, dict):
            payment_intent = payment_intent.get("id")

        created = data.get("created")
        created_at = (
            datetime.fromtimestamp(int(created), tz=timezone.utc)
            if isinstance(created, (int, float))
            else None
        )

        return cls(
            session_id=data["id"],
            payment_status=data.get("payment_status") or "unpaid",
            status=data.get("status"),
            amount_total=_optional_int(data.get("amount_total")),
            currency=data.get("currency"),
            payment_intent_id=payment_intent or None,
            customer_email=details.get("email") or data.get("customer_email"),
            customer_name=details.get("name"),
            customer_phone=details.get("phone"),
            created=created_at,
            metadata=SessionMetadata.from_stripe(data.get("metadata")),
        )
