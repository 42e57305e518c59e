"""Booking state store with an explicit transition table.

Bookings are keyed by stripe_session_id, so there is never more than one row
per Checkout session. Every write is conditional on the status that was read
(optimistic concurrency): a concurrent writer causes a re-read and a bounded
retry instead of a lost update.

Transition table (current status, trigger) -> new status:

    current \\ trigger   PENDING   SUCCEEDED   EXPIRED    REFUNDED
    (none)              pending   paid        no-op      no-op
    pending             pending   paid        canceled   canceled
    paid                rejected  paid        rejected   canceled
    canceled            rejected  rejected    rejected   rejected

Rejected transitions never regress a terminal state; the caller records them
as skipped.
"""

import logging
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from tourbook.models import (
    Booking,
    BookingStatus,
    BookingTrigger,
    CheckoutSessionSnapshot,
    TransitionResult,
)

from .dynamodb import BOOKINGS_TABLE, DynamoDBService, get_dynamodb_service

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3

NO_BOOKING = None

TRANSITIONS: dict[tuple[BookingStatus | None, BookingTrigger], BookingStatus] = {
    (NO_BOOKING, BookingTrigger.PAYMENT_PENDING): BookingStatus.PENDING,
    (NO_BOOKING, BookingTrigger.PAYMENT_SUCCEEDED): BookingStatus.PAID,
    (BookingStatus.PENDING, BookingTrigger.PAYMENT_PENDING): BookingStatus.PENDING,
    (BookingStatus.PENDING, BookingTrigger.PAYMENT_SUCCEEDED): BookingStatus.PAID,
    (BookingStatus.PENDING, BookingTrigger.SESSION_EXPIRED): BookingStatus.CANCELED,
    (BookingStatus.PENDING, BookingTrigger.CHARGE_REFUNDED): BookingStatus.CANCELED,
    (BookingStatus.PAID, BookingTrigger.PAYMENT_SUCCEEDED): BookingStatus.PAID,
    (BookingStatus.PAID, BookingTrigger.CHARGE_REFUNDED): BookingStatus.CANCELED,
}

# Triggers that only act on an existing booking
UPDATE_ONLY_TRIGGERS = frozenset({BookingTrigger.SESSION_EXPIRED, BookingTrigger.CHARGE_REFUNDED})


class BookingStoreError(Exception):
    """Raised when a booking write cannot be completed."""


def next_status(
    current: BookingStatus | None, trigger: BookingTrigger
) -> BookingStatus | None:
    """Look up the transition table.

    Returns:
        The new status, or None when the transition is not allowed.
    """
    return TRANSITIONS.get((current, trigger))


def generate_booking_id() -> str:
    return f"BK-{uuid.uuid4().hex[:10].upper()}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def snapshot_fields(snapshot: CheckoutSessionSnapshot) -> dict[str, Any]:
    """Booking attributes carried by a Checkout session snapshot."""
    fields: dict[str, Any] = {
        "total": snapshot.amount_total,
        "currency": snapshot.currency,
        "payment_intent_id": snapshot.payment_intent_id,
        "customer_email": snapshot.customer_email,
        "customer_name": snapshot.customer_name,
        "customer_phone": snapshot.customer_phone,
    }

    meta = snapshot.metadata
    if meta is not None:
        fields.update(
            {
                "tour_id": meta.tour_id,
                "tour_slug": meta.tour_slug,
                "tour_title": meta.tour_title,
                "date": meta.date or None,
                "persons": meta.quantity,
                "origin_currency": meta.origin_currency or None,
                "catalog_price": meta.catalog_price,
                "customer_name": snapshot.customer_name or meta.customer_name or None,
                "customer_phone": snapshot.customer_phone or meta.phone,
            }
        )

    return {key: value for key, value in fields.items() if value is not None}


class BookingStore:
    """Persist booking rows and apply status transitions."""

    def __init__(self, db: DynamoDBService) -> None:
        """Initialize booking store.

        Args:
            db: DynamoDB service instance
        """
        self.db = db

    def get(self, session_id: str) -> Booking | None:
        """Get the booking for a Checkout session."""
        item = self.db.get_item(
            BOOKINGS_TABLE, {"stripe_session_id": session_id}, consistent_read=True
        )
        return Booking.from_item(item) if item else None

    def _write(
        self,
        session_id: str,
        current: BookingStatus | None,
        new_status: BookingStatus,
        fields: dict[str, Any],
    ) -> dict[str, Any] | None:
        now = _now_iso()
        names: dict[str, str] = {"#status": "status", "#updated_at": "updated_at"}
        values: dict[str, Any] = {":status": new_status.value, ":updated_at": now}
        sets = ["#status = :status", "#updated_at = :updated_at"]

        for index, (attr, value) in enumerate(sorted(fields.items())):
            names[f"#f{index}"] = attr
            values[f":f{index}"] = value
            sets.append(f"#f{index} = :f{index}")

        names["#booking_id"] = "booking_id"
        names["#created_at"] = "created_at"
        values[":booking_id"] = generate_booking_id()
        values[":created_at"] = now
        sets.append("#booking_id = if_not_exists(#booking_id, :booking_id)")
        sets.append("#created_at = if_not_exists(#created_at, :created_at)")

        if current is None:
            condition = "attribute_not_exists(stripe_session_id)"
        else:
            condition = "#status = :current"
            values[":current"] = current.value

        return self.db.update_item(
            BOOKINGS_TABLE,
            key={"stripe_session_id": session_id},
            update_expression="SET " + ", ".join(sets),
            expression_attribute_values=values,
            expression_attribute_names=names,
            condition_expression=condition,
        )

    def apply(
        self,
        session_id: str,
        trigger: BookingTrigger,
        snapshot: CheckoutSessionSnapshot | None = None,
    ) -> TransitionResult:
        """Apply a payment trigger to the booking for a session.

        Inserts the booking when it does not exist and the trigger creates
        one; otherwise updates it according to the transition table.

        Args:
            session_id: Checkout session ID
            trigger: Payment fact observed
            snapshot: Session data used to fill booking attributes

        Returns:
            TransitionResult describing what happened

        Raises:
            BookingStoreError: If concurrent writers keep winning the race.
        """
        fields = snapshot_fields(snapshot) if snapshot is not None else {}

        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            existing = self.get(session_id)
            current = existing.status if existing else None

            if current is None and trigger in UPDATE_ONLY_TRIGGERS:
                logger.info("No booking for session %s; %s is a no-op", session_id, trigger.value)
                return TransitionResult(
                    session_id=session_id,
                    trigger=trigger,
                    applied=False,
                    reason="no_booking",
                )

            new_status = next_status(current, trigger)
            if new_status is None:
                logger.warning(
                    "Rejected transition for session %s: %s + %s",
                    session_id,
                    current.value if current else "none",
                    trigger.value,
                )
                return TransitionResult(
                    session_id=session_id,
                    trigger=trigger,
                    previous_status=current,
                    new_status=current,
                    applied=False,
                    reason="transition_rejected",
                    booking=existing,
                )

            attrs = self._write(session_id, current, new_status, fields)
            if attrs is not None:
                booking = Booking.from_item(attrs)
                logger.info(
                    "Booking %s for session %s: %s -> %s (%s)",
                    booking.booking_id,
                    session_id,
                    current.value if current else "none",
                    new_status.value,
                    trigger.value,
                )
                return TransitionResult(
                    session_id=session_id,
                    trigger=trigger,
                    previous_status=current,
                    new_status=new_status,
                    applied=True,
                    booking=booking,
                )

            logger.info(
                "Concurrent update on session %s (attempt %d/%d), re-reading",
                session_id,
                attempt,
                MAX_WRITE_ATTEMPTS,
            )

        raise BookingStoreError(
            f"Could not apply {trigger.value} to session {session_id} "
            f"after {MAX_WRITE_ATTEMPTS} attempts"
        )


@lru_cache(maxsize=1)
def get_booking_store() -> BookingStore:
    """Get the shared BookingStore instance."""
    return BookingStore(get_dynamodb_service())
