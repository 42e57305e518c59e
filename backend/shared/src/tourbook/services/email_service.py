"""Transactional email via Amazon SES.

Messages are sent with send_raw_email so a PDF invoice can travel as a MIME
attachment. When SES rejects the primary sender (unverified identity), the
message is retried once from the fallback sender.
"""

import logging
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from functools import lru_cache

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, Field

from tourbook.config import get_settings

logger = logging.getLogger(__name__)

# SES error codes that mean "this sender cannot be used"
SENDER_REJECTED_CODES = frozenset({"MessageRejected", "MailFromDomainNotVerifiedException"})


class EmailServiceError(Exception):
    """Raised when an email cannot be delivered to SES."""

    def __init__(self, message: str, error_code: str | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code


class EmailAttachment(BaseModel):
    filename: str
    content: bytes
    content_type: str = "application/pdf"


class EmailMessage(BaseModel):
    """An outgoing email."""

    to: str
    subject: str
    html: str
    text: str
    reply_to: str | None = None
    attachments: list[EmailAttachment] = Field(default_factory=list)


def build_mime_message(message: EmailMessage, sender: str) -> MIMEMultipart:
    """Assemble a multipart/mixed message with an alternative body part."""
    mime = MIMEMultipart("mixed")
    mime["Subject"] = message.subject
    mime["From"] = sender
    mime["To"] = message.to
    if message.reply_to:
        mime["Reply-To"] = message.reply_to

    body = MIMEMultipart("alternative")
    body.attach(MIMEText(message.text, "plain", "utf-8"))
    body.attach(MIMEText(message.html, "html", "utf-8"))
    mime.attach(body)

    for attachment in message.attachments:
        _, subtype = attachment.content_type.split("/", 1)
        part = MIMEApplication(attachment.content, _subtype=subtype)
        part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
        mime.attach(part)

    return mime


class EmailService:
    """Send transactional email through SES."""

    def __init__(
        self,
        sender: str | None = None,
        fallback_sender: str | None = None,
        region: str | None = None,
    ) -> None:
        """Initialize email service.

        Args:
            sender: Primary From address. Defaults to Settings.email_from.
            fallback_sender: From address used when the primary is rejected.
            region: SES region. Defaults to Settings.ses_region, then boto3's default.
        """
        settings = get_settings()
        self.sender = sender or settings.email_from or None
        self.fallback_sender = fallback_sender or settings.email_fallback_from
        self._client = boto3.client("ses", region_name=region or settings.ses_region)

    def _send_raw(self, message: EmailMessage, sender: str) -> str:
        mime = build_mime_message(message, sender)
        response = self._client.send_raw_email(
            Source=sender,
            Destinations=[message.to],
            RawMessage={"Data": mime.as_bytes()},
        )
        message_id: str = response["MessageId"]
        return message_id

    def send(self, message: EmailMessage) -> str:
        """Send an email.

        Returns:
            SES message ID

        Raises:
            EmailServiceError: If every sender was rejected or SES failed.
        """
        senders = [s for s in (self.sender, self.fallback_sender) if s]
        if not senders:
            raise EmailServiceError("No sender address configured")

        last_error: ClientError | None = None
        for sender in dict.fromkeys(senders):
            try:
                message_id = self._send_raw(message, sender)
                logger.info("Sent email to %s... from %s (%s)", message.to[:20], sender, message_id)
                return message_id
            except ClientError as e:
                code = e.response.get("Error", {}).get("Code", "Unknown")
                if code not in SENDER_REJECTED_CODES:
                    raise EmailServiceError(f"Failed to send email: {e}", error_code=code) from e
                logger.warning("Sender %s rejected by SES (%s), trying fallback", sender, code)
                last_error = e
            except BotoCoreError as e:
                raise EmailServiceError(f"Failed to send email: {e}") from e

        raise EmailServiceError(
            f"All senders rejected: {last_error}", error_code="MessageRejected"
        ) from last_error


@lru_cache(maxsize=1)
def get_email_service() -> EmailService:
    """Get the shared EmailService instance."""
    return EmailService()
