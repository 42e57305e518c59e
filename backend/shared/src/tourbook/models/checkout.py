"""Booking request validation and checkout result models.

BookingRequest is the normalized, typed form of a raw booking payload. It is
used both as the FastAPI request body and directly through
validate_booking_request() for callers holding a plain dict.
"""

import re
import datetime as dt
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_core import PydanticCustomError

from .errors import BookingError, ErrorCode

MIN_QUANTITY = 1
MAX_QUANTITY = 20

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")

# Custom pydantic error type used for tour dates before today
DATE_IN_PAST_ERROR = "date_in_past"


def utc_today() -> dt.date:
    """Current calendar date in UTC."""
    return dt.datetime.now(dt.timezone.utc).date()


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class TourRef(BaseModel):
    """Client reference to a catalog tour: slug, title, or both."""

    model_config = ConfigDict(extra="ignore")

    slug: Optional[str] = Field(default=None, max_length=200, examples=["guatape-day-trip"])
    title: Optional[str] = Field(default=None, max_length=200)
    price: Optional[float] = Field(
        default=None,
        description="Client-side display price. Accepted for compatibility and ignored.",
    )

    @field_validator("slug", "title", mode="before")
    @classmethod
    def strip_blank(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @model_validator(mode="after")
    def require_slug_or_title(self) -> "TourRef":
        if not self.slug and not self.title:
            raise ValueError("Tour slug or title is required")
        return self


class CustomerInfo(BaseModel):
    """Customer contact details."""

    model_config = ConfigDict(extra="ignore")

    email: EmailStr
    name: str = Field(..., min_length=2, max_length=120)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @property
    def normalized_email(self) -> str:
        return str(self.email).strip().lower()


class BookingRequest(BaseModel):
    """Validated booking request.

    Rules:
    - quantity is an integer in [1, 20]
    - date is a YYYY-MM-DD calendar date, today (UTC) or later
    - customer.email is well-formed
    - at least one of tour.slug / tour.title is present
    """

    model_config = ConfigDict(extra="ignore")

    tour: TourRef
    quantity: int = Field(..., ge=MIN_QUANTITY, le=MAX_QUANTITY)
    customer: CustomerInfo
    date: str = Field(..., description="Tour date (YYYY-MM-DD)", examples=["2026-12-01"])
    phone: Optional[str] = Field(default=None, max_length=40)
    currency: str = Field(default="COP", description="Currency the client displayed prices in")
    locale: Optional[str] = Field(default=None, max_length=10)

    @field_validator("quantity", mode="before")
    @classmethod
    def reject_non_integer_quantity(cls, v: Any) -> Any:
        # bool is an int subclass; 2.5 must not silently truncate
        if isinstance(v, bool) or (isinstance(v, float) and not v.is_integer()):
            raise ValueError("Quantity must be a whole number")
        return v

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        v = v.strip()
        if not _DATE_PATTERN.match(v):
            raise ValueError("Date must use the YYYY-MM-DD format")
        try:
            parsed = dt.date.fromisoformat(v)
        except ValueError:
            raise ValueError("Date is not a valid calendar date") from None
        if parsed < utc_today():
            raise PydanticCustomError(DATE_IN_PAST_ERROR, "Tour date must be today or later")
        return v

    @field_validator("phone", "locale", mode="before")
    @classmethod
    def strip_optional(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("currency", mode="before")
    @classmethod
    def normalize_currency(cls, v: Any) -> Any:
        if v is None:
            return "COP"
        if isinstance(v, str):
            v = v.strip().upper()
            if not _CURRENCY_PATTERN.match(v):
                raise ValueError("Currency must be a 3-letter ISO code")
        return v

    @property
    def tour_date(self) -> dt.date:
        return dt.date.fromisoformat(self.date)


class CheckoutSessionResult(BaseModel):
    """Result of creating a hosted checkout session."""

    url: str = Field(..., description="Redirect URL for the customer")
    session_id: Optional[str] = Field(default=None, examples=["cs_test_a1b2c3"])
    expires_at: Optional[dt.datetime] = None
    locale: str = "auto"
    idempotency_key: Optional[str] = None
    amount_total: Optional[int] = Field(default=None, description="Total in provider minor units")
    currency: Optional[str] = None
    mock: bool = False


def _format_error_message(error: dict[str, Any]) -> str:
    ctx = error.get("ctx") or {}
    if error.get("type") == "value_error" and "error" in ctx:
        return str(ctx["error"])
    return str(error.get("msg", "Invalid value"))


def first_validation_error(errors: list[dict[str, Any]]) -> tuple[ErrorCode, str, str]:
    """Reduce pydantic errors to the first one.

    Args:
        errors: List of error dicts from ValidationError.errors()

    Returns:
        Tuple of (error code, human-readable message, dotted field path).
    """
    if not errors:
        return ErrorCode.INVALID_REQUEST, "Invalid booking request", ""

    error = errors[0]
    field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
    code = ErrorCode.DATE_IN_PAST if error.get("type") == DATE_IN_PAST_ERROR else ErrorCode.INVALID_REQUEST
    return code, _format_error_message(error), field


def validate_booking_request(payload: Any) -> BookingRequest:
    """Validate a raw booking payload.

    Pure: no I/O, no side effects.

    Raises:
        BookingError: INVALID_REQUEST or DATE_IN_PAST with the first
            validation message, and every field error in details.
    """
    try:
        return BookingRequest.model_validate(payload)
    except ValidationError as e:
        errors = e.errors(include_url=False)
        code, message, field = first_validation_error(errors)
        raise BookingError(
            code,
            details={
                "field": field,
                "errors": [
                    {"field": ".".join(str(p) for p in err["loc"]), "message": _format_error_message(err)}
                    for err in errors
                ],
            },
            message=message,
        )
