"""Webhook handler for processing Stripe events.

Provides business logic for handling webhook events separate from
HTTP routing concerns. Signature verification happens in the route;
this module owns:
- event-level idempotency through the webhook-events ledger
- dispatch of each event type to a booking trigger
- the notification side effect once a booking becomes paid
"""

import datetime as dt
import logging
from functools import lru_cache
from typing import Any, Callable

from pydantic import BaseModel

from tourbook.models import (
    BookingTrigger,
    CheckoutSessionSnapshot,
    ProcessingResult,
    StripeWebhookEvent,
    TransitionResult,
)
from tourbook.utils.logging import log_webhook_event

from .booking_store import BookingStore, get_booking_store
from .dynamodb import WEBHOOK_EVENTS_TABLE, DynamoDBService, get_dynamodb_service
from .notification_service import NotificationService, get_notification_service
from .stripe_service import StripeService, WebhookPayloadError, get_stripe_service

logger = logging.getLogger(__name__)

# A claim still marked "received" after this long belongs to a crashed invocation
STALE_CLAIM_AFTER = dt.timedelta(minutes=5)

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_ASYNC_SUCCEEDED = "checkout.session.async_payment_succeeded"
CHECKOUT_ASYNC_FAILED = "checkout.session.async_payment_failed"
CHECKOUT_EXPIRED = "checkout.session.expired"
PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
CHARGE_REFUNDED = "charge.refunded"

HANDLED_EVENT_TYPES = frozenset(
    {
        CHECKOUT_COMPLETED,
        CHECKOUT_ASYNC_SUCCEEDED,
        CHECKOUT_ASYNC_FAILED,
        CHECKOUT_EXPIRED,
        PAYMENT_INTENT_SUCCEEDED,
        PAYMENT_INTENT_FAILED,
        CHARGE_REFUNDED,
    }
)

# Event type prefix -> Stripe object type carried in data.object
EXPECTED_OBJECT_TYPES = {
    "checkout.session.": "checkout.session",
    "payment_intent.": "payment_intent",
    "charge.": "charge",
}


class WebhookOutcome(BaseModel):
    """Result of processing one webhook event."""

    event_id: str
    event_type: str
    processing_result: ProcessingResult
    message: str | None = None
    session_id: str | None = None
    booking_status: str | None = None
    notification: str | None = None


def _event_object(event: dict[str, Any]) -> dict[str, Any]:
    data = event.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(obj, dict):
        raise WebhookPayloadError("Webhook event has no data.object")
    return obj


def _validate_event_object(event_type: str, obj: dict[str, Any]) -> None:
    """Reject handled events whose object can never be processed."""
    object_id = obj.get("id")
    if not isinstance(object_id, str) or not object_id:
        raise WebhookPayloadError(f"{event_type} object has no id")

    for prefix, object_type in EXPECTED_OBJECT_TYPES.items():
        if event_type.startswith(prefix) and obj.get("object") != object_type:
            raise WebhookPayloadError(
                f"{event_type} carries a {obj.get('object')!r} object, expected {object_type!r}"
            )


def _now_iso() -> str:
    return dt.datetime.now(dt.UTC).isoformat()


class WebhookHandler:
    """Handler for processing Stripe webhook events.

    Ensures each event ID is processed at most once (a previous attempt that
    ended in error may be reprocessed) and records every outcome.
    """

    def __init__(
        self,
        db: DynamoDBService,
        booking_store: BookingStore,
        stripe_service: StripeService,
        notifications: NotificationService,
    ) -> None:
        self._db = db
        self.bookings = booking_store
        self.stripe = stripe_service
        self.notifications = notifications
        self._dispatch: dict[str, Callable[[dict[str, Any]], WebhookOutcome]] = {
            CHECKOUT_COMPLETED: self.process_checkout_completed,
            CHECKOUT_ASYNC_SUCCEEDED: self.process_checkout_completed,
            CHECKOUT_ASYNC_FAILED: self.process_payment_failed,
            CHECKOUT_EXPIRED: self.process_checkout_expired,
            PAYMENT_INTENT_SUCCEEDED: self.process_payment_intent_succeeded,
            PAYMENT_INTENT_FAILED: self.process_payment_failed,
            CHARGE_REFUNDED: self.process_charge_refunded,
        }

    # Ledger

    def claim_event(self, event_id: str, event_type: str, payload_hash: str) -> bool:
        """Atomically claim an event for processing.

        Returns:
            True if this invocation owns the event, False if it was already
            processed (or is being processed by another invocation).
        """
        now = dt.datetime.now(dt.UTC)
        attrs = self._db.update_item(
            WEBHOOK_EVENTS_TABLE,
            key={"event_id": event_id},
            update_expression=(
                "SET #event_type = :event_type, #payload_hash = :payload_hash, "
                "#received_at = :now, #result = :received, "
                "#attempts = if_not_exists(#attempts, :zero) + :one"
            ),
            expression_attribute_values={
                ":event_type": event_type,
                ":payload_hash": payload_hash,
                ":now": now.isoformat(),
                ":received": ProcessingResult.RECEIVED.value,
                ":error": ProcessingResult.ERROR.value,
                ":stale": (now - STALE_CLAIM_AFTER).isoformat(),
                ":zero": 0,
                ":one": 1,
            },
            expression_attribute_names={
                "#event_id": "event_id",
                "#event_type": "event_type",
                "#payload_hash": "payload_hash",
                "#received_at": "received_at",
                "#result": "processing_result",
                "#attempts": "attempts",
            },
            condition_expression=(
                "attribute_not_exists(#event_id) OR #result = :error OR "
                "(#result = :received AND #received_at < :stale)"
            ),
        )
        return attrs is not None

    def complete_event(self, outcome: WebhookOutcome) -> None:
        """Record the final outcome of a claimed event."""
        names = {"#result": "processing_result", "#processed_at": "processed_at"}
        values: dict[str, Any] = {
            ":result": outcome.processing_result.value,
            ":processed_at": _now_iso(),
        }
        sets = ["#result = :result", "#processed_at = :processed_at"]
        for attr in ("session_id", "booking_status", "message"):
            value = getattr(outcome, attr)
            if value is not None:
                values[f":{attr}"] = value
                sets.append(f"#{attr} = :{attr}")
                names[f"#{attr}"] = attr

        self._db.update_item(
            WEBHOOK_EVENTS_TABLE,
            key={"event_id": outcome.event_id},
            update_expression="SET " + ", ".join(sets),
            expression_attribute_values=values,
            expression_attribute_names=names,
        )

    def get_event(self, event_id: str) -> StripeWebhookEvent | None:
        """Get the ledger record for an event."""
        item = self._db.get_item(WEBHOOK_EVENTS_TABLE, {"event_id": event_id}, consistent_read=True)
        if item is None:
            return None
        data = dict(item)
        data["attempts"] = int(data.get("attempts", 1))
        return StripeWebhookEvent.model_validate(data)

    # Entry point

    def process_event(self, event: dict[str, Any], payload_hash: str) -> WebhookOutcome:
        """Process a verified Stripe event exactly once.

        Args:
            event: Parsed event (id, type, data.object)
            payload_hash: SHA-256 of the raw payload

        Returns:
            WebhookOutcome with the processing result

        Raises:
            WebhookPayloadError: If a handled event has no usable data.object.
            Exception: Any processing failure, after recording it as error.
        """
        event_id = event["id"]
        event_type = event["type"]
        handler = self._dispatch.get(event_type)
        if handler is not None:
            _validate_event_object(event_type, _event_object(event))

        if not self.claim_event(event_id, event_type, payload_hash):
            log_webhook_event(logger, event_type, event_id, result=ProcessingResult.DUPLICATE.value)
            return WebhookOutcome(
                event_id=event_id,
                event_type=event_type,
                processing_result=ProcessingResult.DUPLICATE,
                message="Event already processed",
            )

        try:
            if handler is None:
                outcome = WebhookOutcome(
                    event_id=event_id,
                    event_type=event_type,
                    processing_result=ProcessingResult.SKIPPED,
                    message=f"Event type '{event_type}' not handled",
                )
            else:
                outcome = handler(event)
        except Exception as e:
            error_outcome = WebhookOutcome(
                event_id=event_id,
                event_type=event_type,
                processing_result=ProcessingResult.ERROR,
                message=str(e)[:1000],
            )
            self.complete_event(error_outcome)
            log_webhook_event(logger, event_type, event_id, result="error", error=str(e))
            raise

        self.complete_event(outcome)
        log_webhook_event(
            logger,
            event_type,
            event_id,
            session_id=outcome.session_id,
            booking_status=outcome.booking_status,
            result=outcome.processing_result.value,
        )
        return outcome

    # Event processors

    def _outcome_from_transition(
        self,
        event: dict[str, Any],
        transition: TransitionResult,
        notification: str | None = None,
    ) -> WebhookOutcome:
        status = transition.new_status.value if transition.new_status else None
        if transition.applied:
            result = ProcessingResult.SUCCESS
            message = f"Booking {status} ({transition.trigger.value})"
        else:
            result = ProcessingResult.SKIPPED
            message = f"{transition.trigger.value} not applied: {transition.reason}"
        if notification:
            message = f"{message}; notification {notification}"

        return WebhookOutcome(
            event_id=event["id"],
            event_type=event["type"],
            processing_result=result,
            message=message,
            session_id=transition.session_id,
            booking_status=status,
            notification=notification,
        )

    def _apply_session(
        self,
        event: dict[str, Any],
        snapshot: CheckoutSessionSnapshot,
        trigger: BookingTrigger,
    ) -> WebhookOutcome:
        transition = self.bookings.apply(snapshot.session_id, trigger, snapshot)

        notification = None
        if transition.is_paid:
            notification = self.notifications.send_booking_confirmation(snapshot).value

        return self._outcome_from_transition(event, transition, notification)

    def process_checkout_completed(self, event: dict[str, Any]) -> WebhookOutcome:
        """checkout.session.completed / async_payment_succeeded.

        The booking status follows the session's own payment_status, not the
        event type: delayed payment methods complete the session unpaid.
        """
        snapshot = CheckoutSessionSnapshot.from_stripe(_event_object(event))
        trigger = (
            BookingTrigger.PAYMENT_SUCCEEDED if snapshot.is_paid else BookingTrigger.PAYMENT_PENDING
        )
        return self._apply_session(event, snapshot, trigger)

    def process_checkout_expired(self, event: dict[str, Any]) -> WebhookOutcome:
        """checkout.session.expired: cancel a pending booking, if any."""
        snapshot = CheckoutSessionSnapshot.from_stripe(_event_object(event))
        transition = self.bookings.apply(snapshot.session_id, BookingTrigger.SESSION_EXPIRED)
        return self._outcome_from_transition(event, transition)

    def process_payment_failed(self, event: dict[str, Any]) -> WebhookOutcome:
        """async_payment_failed / payment_intent.payment_failed: audit only."""
        obj = _event_object(event)
        object_id = obj.get("id")
        session_id = object_id if obj.get("object") == "checkout.session" else None
        logger.warning("Payment failed for %s (%s); no booking change", object_id, event["type"])
        return WebhookOutcome(
            event_id=event["id"],
            event_type=event["type"],
            processing_result=ProcessingResult.SKIPPED,
            message=f"Payment failed for {object_id}; no state change",
            session_id=session_id,
        )

    def process_payment_intent_succeeded(self, event: dict[str, Any]) -> WebhookOutcome:
        """payment_intent.succeeded: find the session and run the paid path."""
        payment_intent_id = _event_object(event).get("id")
        snapshot = (
            self.stripe.find_session_by_payment_intent(payment_intent_id)
            if payment_intent_id
            else None
        )
        if snapshot is None:
            return WebhookOutcome(
                event_id=event["id"],
                event_type=event["type"],
                processing_result=ProcessingResult.SKIPPED,
                message=f"No checkout session linked to PaymentIntent {payment_intent_id}",
            )
        return self._apply_session(event, snapshot, BookingTrigger.PAYMENT_SUCCEEDED)

    def process_charge_refunded(self, event: dict[str, Any]) -> WebhookOutcome:
        """charge.refunded: cancel the booking of the refunded session."""
        payment_intent = _event_object(event).get("payment_intent")
        if isinstance(payment_intent, dict):
            payment_intent = payment_intent.get("id")

        snapshot = (
            self.stripe.find_session_by_payment_intent(payment_intent) if payment_intent else None
        )
        if snapshot is None:
            return WebhookOutcome(
                event_id=event["id"],
                event_type=event["type"],
                processing_result=ProcessingResult.SKIPPED,
                message=f"No checkout session linked to refunded charge ({payment_intent})",
            )

        transition = self.bookings.apply(snapshot.session_id, BookingTrigger.CHARGE_REFUNDED)
        return self._outcome_from_transition(event, transition)


@lru_cache(maxsize=1)
def get_webhook_handler() -> WebhookHandler:
    """Get the shared WebhookHandler instance."""
    return WebhookHandler(
        db=get_dynamodb_service(),
        booking_store=get_booking_store(),
        stripe_service=get_stripe_service(),
        notifications=get_notification_service(),
    )
