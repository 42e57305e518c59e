"""Unit tests for WebhookHandler.

Bookings and the event ledger live in moto DynamoDB; Stripe lookups and the
notification side effect are mocked.
"""

import datetime as dt
from typing import Any, Callable
from unittest.mock import MagicMock

import pytest

from tourbook.models import (
    BookingStatus,
    CheckoutSessionSnapshot,
    NotificationResult,
    ProcessingResult,
)
from tourbook.services.booking_store import BookingStore
from tourbook.services.stripe_service import WebhookPayloadError
from tourbook.services.webhook_handler import WebhookHandler

SESSION_ID = "cs_test_a1b2c3d4e5f6"
PAYLOAD_HASH = "0" * 64


@pytest.fixture
def stripe_service() -> MagicMock:
    return MagicMock()


@pytest.fixture
def notifications() -> MagicMock:
    service = MagicMock()
    service.send_booking_confirmation.return_value = NotificationResult.SENT
    return service


@pytest.fixture
def store(db: Any) -> BookingStore:
    return BookingStore(db)


@pytest.fixture
def handler(
    db: Any, store: BookingStore, stripe_service: MagicMock, notifications: MagicMock
) -> WebhookHandler:
    return WebhookHandler(
        db=db,
        booking_store=store,
        stripe_service=stripe_service,
        notifications=notifications,
    )


class TestCheckoutCompleted:
    def test_paid_session_books_and_notifies(
        self,
        handler: WebhookHandler,
        store: BookingStore,
        notifications: MagicMock,
        make_event: Callable[..., dict[str, Any]],
        session_object: Callable[..., dict[str, Any]],
    ) -> None:
        event = make_event("checkout.session.completed", session_object())

        outcome = handler.process_event(event, PAYLOAD_HASH)

        assert outcome.processing_result == ProcessingResult.SUCCESS
        assert outcome.session_id == SESSION_ID
        assert outcome.booking_status == "paid"
        assert outcome.notification == "sent"
        assert store.get(SESSION_ID).status == BookingStatus.PAID  # type: ignore[union-attr]
        notifications.send_booking_confirmation.assert_called_once()
        sent_snapshot = notifications.send_booking_confirmation.call_args.args[0]
        assert isinstance(sent_snapshot, CheckoutSessionSnapshot)
        assert sent_snapshot.session_id == SESSION_ID

    def test_unpaid_session_is_pending_without_email(
        self,
        handler: WebhookHandler,
        store: BookingStore,
        notifications: MagicMock,
        make_event: Callable[..., dict[str, Any]],
        session_object: Callable[..., dict[str, Any]],
    ) -> None:
        event = make_event("checkout.session.completed", session_object(payment_status="unpaid"))

        outcome = handler.process_event(event, PAYLOAD_HASH)

        assert outcome.booking_status == "pending"
        assert store.get(SESSION_ID).status == BookingStatus.PENDING  # type: ignore[union-attr]
        notifications.send_booking_confirmation.assert_not_called()

    def test_async_payment_succeeded_promotes_pending(
        self,
        handler: WebhookHandler,
        store: BookingStore,
        notifications: MagicMock,
        make_event: Callable[..., dict[str, Any]],
        session_object: Callable[..., dict[str, Any]],
    ) -> None:
        handler.process_event(
            make_event("checkout.session.completed", session_object(payment_status="unpaid"), "evt_1"),
            PAYLOAD_HASH,
        )

        outcome = handler.process_event(
            make_event("checkout.session.async_payment_succeeded", session_object(), "evt_2"),
            PAYLOAD_HASH,
        )

        assert outcome.booking_status == "paid"
        assert store.get(SESSION_ID).status == BookingStatus.PAID  # type: ignore[union-attr]
        notifications.send_booking_confirmation.assert_called_once()

    def test_event_without_object_is_payload_error(
        self, handler: WebhookHandler, db: Any
    ) -> None:
        event = {"id": "evt_bad", "type": "checkout.session.completed", "data": {}}

        with pytest.raises(WebhookPayloadError):
            handler.process_event(event, PAYLOAD_HASH)

        assert handler.get_event("evt_bad") is None

    @pytest.mark.parametrize(
        ("event_type", "obj"),
        [
            ("checkout.session.completed", {"object": "checkout.session", "payment_status": "paid"}),
            ("checkout.session.expired", {"id": "", "object": "checkout.session"}),
            ("checkout.session.completed", {"id": "pi_test_123", "object": "payment_intent"}),
            ("payment_intent.succeeded", {"object": "payment_intent"}),
            ("charge.refunded", {"id": "ch_1", "payment_intent": "pi_test_123"}),
        ],
    )
    def test_unusable_object_is_rejected_before_claim(
        self,
        handler: WebhookHandler,
        store: BookingStore,
        notifications: MagicMock,
        event_type: str,
        obj: dict[str, Any],
    ) -> None:
        event = {"id": "evt_bad", "object": "event", "type": event_type, "data": {"object": obj}}

        with pytest.raises(WebhookPayloadError):
            handler.process_event(event, PAYLOAD_HASH)

        assert handler.get_event("evt_bad") is None
        assert store.get(SESSION_ID) is None
        notifications.send_booking_confirmation.assert_not_called()

    def test_unhandled_event_is_not_shape_checked(self, handler: WebhookHandler) -> None:
        event = {"id": "evt_other", "object": "event", "type": "customer.created", "data": {"object": {}}}

        outcome = handler.process_event(event, PAYLOAD_HASH)

        assert outcome.processing_result == ProcessingResult.SKIPPED


class TestIdempotency:
    """Each event ID is processed at most once."""

    def test_duplicate_delivery_is_not_reprocessed(
        self,
        handler: WebhookHandler,
        notifications: MagicMock,
        make_event: Callable[..., dict[str, Any]],
        session_object: Callable[..., dict[str, Any]],
    ) -> None:
        event = make_event("checkout.session.completed", session_object())

        first = handler.process_event(event, PAYLOAD_HASH)
        second = handler.process_event(event, PAYLOAD_HASH)

        assert first.processing_result == ProcessingResult.SUCCESS
        assert second.processing_result == ProcessingResult.DUPLICATE
        notifications.send_booking_confirmation.assert_called_once()

    def test_ledger_records_outcome(
        self,
        handler: WebhookHandler,
        make_event: Callable[..., dict[str, Any]],
        session_object: Callable[..., dict[str, Any]],
    ) -> None:
        handler.process_event(make_event("checkout.session.completed", session_object()), PAYLOAD_HASH)

        record = handler.get_event("evt_test_0001")

        assert record is not None
        assert record.processing_result == "success"
        assert record.session_id == SESSION_ID
        assert record.booking_status == "paid"
        assert record.payload_hash == PAYLOAD_HASH
        assert record.processed_at is not None
        assert record.attempts == 1

    def test_failed_event_is_recorded_and_reprocessed(
        self,
        handler: WebhookHandler,
        store: BookingStore,
        stripe_service: MagicMock,
        make_event: Callable[..., dict[str, Any]],
        session_object: Callable[..., dict[str, Any]],
    ) -> None:
        event = make_event("payment_intent.succeeded", {"id": "pi_test_123", "object": "payment_intent"})
        stripe_service.find_session_by_payment_intent.side_effect = RuntimeError("Stripe unavailable")

        with pytest.raises(RuntimeError):
            handler.process_event(event, PAYLOAD_HASH)

        record = handler.get_event(event["id"])
        assert record is not None
        assert record.processing_result == "error"
        assert "Stripe unavailable" in (record.message or "")

        stripe_service.find_session_by_payment_intent.side_effect = None
        stripe_service.find_session_by_payment_intent.return_value = CheckoutSessionSnapshot.from_stripe(
            session_object()
        )
        retry = handler.process_event(event, PAYLOAD_HASH)

        assert retry.processing_result == ProcessingResult.SUCCESS
        assert store.get(SESSION_ID).status == BookingStatus.PAID  # type: ignore[union-attr]
        assert handler.get_event(event["id"]).attempts == 2  # type: ignore[union-attr]

    def test_fresh_claim_in_progress_counts_as_duplicate(self, handler: WebhookHandler) -> None:
        assert handler.claim_event("evt_busy", "checkout.session.completed", PAYLOAD_HASH)

        assert not handler.claim_event("evt_busy", "checkout.session.completed", PAYLOAD_HASH)

    def test_stale_claim_can_be_taken_over(
        self, handler: WebhookHandler, table: Callable[[str], Any]
    ) -> None:
        stale = (dt.datetime.now(dt.UTC) - dt.timedelta(minutes=30)).isoformat()
        table("webhook-events").put_item(
            Item={
                "event_id": "evt_crashed",
                "event_type": "checkout.session.completed",
                "payload_hash": PAYLOAD_HASH,
                "received_at": stale,
                "processing_result": "received",
                "attempts": 1,
            }
        )

        assert handler.claim_event("evt_crashed", "checkout.session.completed", PAYLOAD_HASH)


class TestOtherEvents:
    def test_unhandled_type_is_skipped_and_recorded(
        self,
        handler: WebhookHandler,
        make_event: Callable[..., dict[str, Any]],
    ) -> None:
        event = make_event("customer.created", {"id": "cus_1", "object": "customer"}, "evt_other")

        outcome = handler.process_event(event, PAYLOAD_HASH)

        assert outcome.processing_result == ProcessingResult.SKIPPED
        record = handler.get_event("evt_other")
        assert record is not None
        assert record.processing_result == "skipped"
        assert record.event_type == "customer.created"

    def test_expired_without_booking_is_noop(
        self,
        handler: WebhookHandler,
        store: BookingStore,
        make_event: Callable[..., dict[str, Any]],
        session_object: Callable[..., dict[str, Any]],
    ) -> None:
        event = make_event(
            "checkout.session.expired", session_object(payment_status="unpaid", status="expired")
        )

        outcome = handler.process_event(event, PAYLOAD_HASH)

        assert outcome.processing_result == ProcessingResult.SKIPPED
        assert store.get(SESSION_ID) is None

    def test_payment_failed_changes_nothing(
        self,
        handler: WebhookHandler,
        store: BookingStore,
        make_event: Callable[..., dict[str, Any]],
    ) -> None:
        event = make_event("payment_intent.payment_failed", {"id": "pi_test_123", "object": "payment_intent"})

        outcome = handler.process_event(event, PAYLOAD_HASH)

        assert outcome.processing_result == ProcessingResult.SKIPPED
        assert store.get(SESSION_ID) is None

    def test_payment_intent_succeeded_after_completed_sends_once(
        self,
        handler: WebhookHandler,
        stripe_service: MagicMock,
        notifications: MagicMock,
        make_event: Callable[..., dict[str, Any]],
        session_object: Callable[..., dict[str, Any]],
    ) -> None:
        snapshot = CheckoutSessionSnapshot.from_stripe(session_object())
        stripe_service.find_session_by_payment_intent.return_value = snapshot
        notifications.send_booking_confirmation.side_effect = [
            NotificationResult.SENT,
            NotificationResult.ALREADY_SENT,
        ]

        handler.process_event(make_event("checkout.session.completed", session_object(), "evt_1"), PAYLOAD_HASH)
        outcome = handler.process_event(
            make_event("payment_intent.succeeded", {"id": "pi_test_123", "object": "payment_intent"}, "evt_2"),
            PAYLOAD_HASH,
        )

        stripe_service.find_session_by_payment_intent.assert_called_once_with("pi_test_123")
        assert outcome.notification == "already_sent"
        assert outcome.booking_status == "paid"

    def test_payment_intent_without_session_is_skipped(
        self,
        handler: WebhookHandler,
        stripe_service: MagicMock,
        make_event: Callable[..., dict[str, Any]],
    ) -> None:
        stripe_service.find_session_by_payment_intent.return_value = None

        outcome = handler.process_event(
            make_event("payment_intent.succeeded", {"id": "pi_orphan", "object": "payment_intent"}),
            PAYLOAD_HASH,
        )

        assert outcome.processing_result == ProcessingResult.SKIPPED

    def test_refund_cancels_paid_booking(
        self,
        handler: WebhookHandler,
        store: BookingStore,
        stripe_service: MagicMock,
        make_event: Callable[..., dict[str, Any]],
        session_object: Callable[..., dict[str, Any]],
    ) -> None:
        stripe_service.find_session_by_payment_intent.return_value = CheckoutSessionSnapshot.from_stripe(
            session_object()
        )
        handler.process_event(make_event("checkout.session.completed", session_object(), "evt_1"), PAYLOAD_HASH)

        outcome = handler.process_event(
            make_event(
                "charge.refunded",
                {"id": "ch_1", "object": "charge", "payment_intent": "pi_test_123", "amount_refunded": 7000},
                "evt_2",
            ),
            PAYLOAD_HASH,
        )

        assert outcome.processing_result == ProcessingResult.SUCCESS
        assert outcome.booking_status == "canceled"
        assert store.get(SESSION_ID).status == BookingStatus.CANCELED  # type: ignore[union-attr]

    def test_late_completed_after_refund_stays_canceled(
        self,
        handler: WebhookHandler,
        store: BookingStore,
        stripe_service: MagicMock,
        notifications: MagicMock,
        make_event: Callable[..., dict[str, Any]],
        session_object: Callable[..., dict[str, Any]],
    ) -> None:
        stripe_service.find_session_by_payment_intent.return_value = CheckoutSessionSnapshot.from_stripe(
            session_object()
        )
        handler.process_event(make_event("checkout.session.completed", session_object(), "evt_1"), PAYLOAD_HASH)
        handler.process_event(
            make_event("charge.refunded", {"id": "ch_1", "object": "charge", "payment_intent": "pi_test_123"}, "evt_2"),
            PAYLOAD_HASH,
        )

        late = handler.process_event(
            make_event("checkout.session.async_payment_succeeded", session_object(), "evt_3"),
            PAYLOAD_HASH,
        )

        assert late.processing_result == ProcessingResult.SKIPPED
        assert store.get(SESSION_ID).status == BookingStatus.CANCELED  # type: ignore[union-attr]
        notifications.send_booking_confirmation.assert_called_once()
