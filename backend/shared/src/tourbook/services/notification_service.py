"""Booking confirmation dispatcher.

Sends exactly one confirmation email (with the invoice PDF attached) per
Checkout session. A marker row in the invoice-sends table guards the send:

- the marker is claimed with a conditional write before sending, so two
  concurrent webhook deliveries for one session cannot both send
- it becomes "sent" only after SES accepted the message
- a failed send marks it "failed", which a later delivery may reclaim

Invoice rendering failures degrade to an email without attachment. Send
failures are logged and reported, never raised: booking state has already
been committed and must not be rolled back by a notification problem.
"""

import datetime as dt
import html
import logging
from functools import lru_cache
from typing import Any

from tourbook.config import Settings, get_settings
from tourbook.models import CheckoutSessionSnapshot, NotificationResult

from .currency import format_minor_amount
from .dynamodb import INVOICE_SENDS_TABLE, DynamoDBService, get_dynamodb_service
from .email_service import (
    EmailAttachment,
    EmailMessage,
    EmailService,
    EmailServiceError,
    get_email_service,
)
from .invoice import InvoiceData, InvoiceRenderError, build_invoice_filename, render_invoice_pdf

logger = logging.getLogger(__name__)

MARKER_SENDING = "sending"
MARKER_SENT = "sent"
MARKER_FAILED = "failed"

# A "sending" marker older than this belongs to a crashed invocation
STALE_SENDING_AFTER = dt.timedelta(minutes=5)


class NotificationService:
    """Dispatch booking confirmation emails."""

    def __init__(
        self,
        db: DynamoDBService,
        email_service: EmailService,
        settings: Settings | None = None,
    ) -> None:
        """Initialize notification service.

        Args:
            db: DynamoDB service instance
            email_service: Email sender
            settings: Configuration. Defaults to the process settings.
        """
        self.db = db
        self.email = email_service
        self.settings = settings or get_settings()

    # Marker

    def get_marker(self, session_id: str) -> dict[str, Any] | None:
        return self.db.get_item(INVOICE_SENDS_TABLE, {"session_id": session_id}, consistent_read=True)

    def is_already_sent(self, session_id: str) -> bool:
        marker = self.get_marker(session_id)
        return marker is not None and marker.get("status") == MARKER_SENT

    def _claim_marker(self, session_id: str, recipient: str) -> bool:
        now = dt.datetime.now(dt.UTC)
        return self.db.put_item(
            INVOICE_SENDS_TABLE,
            {
                "session_id": session_id,
                "status": MARKER_SENDING,
                "recipient": recipient,
                "claimed_at": now.isoformat(),
            },
            condition_expression=(
                "attribute_not_exists(session_id) OR #status = :failed OR "
                "(#status = :sending AND claimed_at < :stale)"
            ),
            expression_attribute_names={"#status": "status"},
            expression_attribute_values={
                ":failed": MARKER_FAILED,
                ":sending": MARKER_SENDING,
                ":stale": (now - STALE_SENDING_AFTER).isoformat(),
            },
        )

    def _finish_marker(self, session_id: str, status: str, detail: str | None = None) -> None:
        values: dict[str, Any] = {":status": status, ":finished_at": dt.datetime.now(dt.UTC).isoformat()}
        names = {"#status": "status"}
        update = "SET #status = :status, finished_at = :finished_at"
        if detail:
            values[":detail"] = detail[:500]
            names["#detail"] = "detail"
            update += ", #detail = :detail"
        self.db.update_item(
            INVOICE_SENDS_TABLE,
            key={"session_id": session_id},
            update_expression=update,
            expression_attribute_values=values,
            expression_attribute_names=names,
        )

    # Content

    def build_message(
        self,
        session: CheckoutSessionSnapshot,
        recipient: str,
        attachment: EmailAttachment | None,
    ) -> EmailMessage:
        """Compose the confirmation email for a paid session."""
        brand = self.settings.brand_name
        meta = session.metadata
        tour_title = meta.tour_title if meta else f"{brand} tour"
        tour_date = meta.date if meta else None
        persons = meta.quantity if meta else None
        amount = (
            format_minor_amount(session.amount_total, session.currency or "USD")
            if session.amount_total is not None
            else None
        )
        manage_url = f"{self.settings.manage_booking_base_url}/{session.session_id}"

        subject = f"{brand} booking confirmation: {tour_title}"
        if tour_date:
            subject += f" ({tour_date})"

        details = [
            ("Tour", tour_title),
            ("Date", tour_date),
            ("Persons", persons),
            ("Amount", amount),
        ]
        details = [(label, value) for label, value in details if value]

        text_lines = [
            f"Thank you for booking with {brand}!",
            "",
            *(f"- {label}: {value}" for label, value in details),
            "",
            f"Manage your booking: {manage_url}",
            "If you need to change anything, reply to this email.",
            f"The {brand} team",
        ]
        items = "".join(
            f"<li><strong>{html.escape(label)}:</strong> {html.escape(str(value))}</li>"
            for label, value in details
        )
        escaped_url = html.escape(manage_url, quote=True)
        html_body = (
            '<div style="font-family:Arial,sans-serif;line-height:1.5;color:#111827">'
            f'<h1 style="margin:0 0 8px 0;color:#0D5BA1;font-size:22px">Thank you for your booking!</h1>'
            f"<p>Your experience with {html.escape(brand)} is confirmed.</p>"
            f'<ul style="padding-left:16px;margin:8px 0">{items}</ul>'
            f'<p>Manage your booking: <a href="{escaped_url}">{escaped_url}</a></p>'
            "<p>If you need to change anything, reply to this email.</p>"
            f'<p style="margin-top:16px">The {html.escape(brand)} team</p>'
            "</div>"
        )

        return EmailMessage(
            to=recipient,
            subject=subject,
            html=html_body,
            text="\n".join(text_lines),
            reply_to=self.settings.email_reply_to,
            attachments=[attachment] if attachment else [],
        )

    def render_attachment(self, session: CheckoutSessionSnapshot) -> EmailAttachment | None:
        """Render the invoice PDF, or None when the session cannot be invoiced.

        pydantic ValidationError is a ValueError, so incomplete session data
        lands here too.
        """
        try:
            data = InvoiceData.from_session(session, self.settings.site_url, self.settings.brand_name)
            pdf = render_invoice_pdf(data, logo_path=self.settings.invoice_logo_path)
        except (InvoiceRenderError, ValueError) as e:
            logger.warning("Sending confirmation for %s without invoice: %s", session.session_id, e)
            return None
        return EmailAttachment(
            filename=build_invoice_filename(data.tour_title, data.created_at, data.brand_name),
            content=pdf,
        )

    # Dispatch

    def send_booking_confirmation(self, session: CheckoutSessionSnapshot) -> NotificationResult:
        """Send the confirmation email for a paid session at most once.

        Returns:
            SENT, ALREADY_SENT, SKIPPED (no recipient) or FAILED.
        """
        session_id = session.session_id

        if self.is_already_sent(session_id):
            logger.info("Confirmation already sent for session %s", session_id)
            return NotificationResult.ALREADY_SENT

        recipient = session.recipient_email
        if not recipient:
            logger.warning("No recipient email on session %s; confirmation skipped", session_id)
            return NotificationResult.SKIPPED

        if not self._claim_marker(session_id, recipient):
            logger.info("Confirmation for session %s sent or in progress elsewhere", session_id)
            return NotificationResult.ALREADY_SENT

        try:
            attachment = self.render_attachment(session)
            message = self.build_message(session, recipient, attachment)
            message_id = self.email.send(message)
        except EmailServiceError as e:
            logger.error("Confirmation email failed for session %s: %s", session_id, e)
            self._finish_marker(session_id, MARKER_FAILED, str(e))
            return NotificationResult.FAILED
        except Exception as e:
            # A failed marker is reclaimable by the next delivery
            self._finish_marker(session_id, MARKER_FAILED, f"{type(e).__name__}: {e}")
            raise

        self._finish_marker(session_id, MARKER_SENT, message_id)
        logger.info(
            "Confirmation sent for session %s (attachment: %s)",
            session_id,
            "yes" if attachment else "no",
        )
        return NotificationResult.SENT


@lru_cache(maxsize=1)
def get_notification_service() -> NotificationService:
    """Get the shared NotificationService instance."""
    return NotificationService(db=get_dynamodb_service(), email_service=get_email_service())
