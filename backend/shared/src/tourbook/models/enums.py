"""Enumerations shared by the booking pipeline."""

from enum import Enum


class BookingStatus(str, Enum):
    """Lifecycle status of a booking row."""

    PENDING = "pending"
    PAID = "paid"
    CANCELED = "canceled"


class BookingTrigger(str, Enum):
    """Payment facts that drive booking status transitions."""

    PAYMENT_PENDING = "payment_pending"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    SESSION_EXPIRED = "session_expired"
    CHARGE_REFUNDED = "charge_refunded"


class ProcessingResult(str, Enum):
    """Outcome recorded for each received webhook event."""

    RECEIVED = "received"
    SUCCESS = "success"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    ERROR = "error"


class NotificationResult(str, Enum):
    """Outcome of a booking confirmation dispatch."""

    SENT = "sent"
    ALREADY_SENT = "already_sent"
    SKIPPED = "skipped"
    FAILED = "failed"
