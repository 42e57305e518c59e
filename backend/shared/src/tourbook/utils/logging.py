"""Logging with a per-request correlation ID.

The API middleware sets the correlation ID for each request; every record
formatted by StructuredFormatter is prefixed with it, so one checkout or one
webhook delivery can be followed across services:

    [3f2a...] 2026-11-02 12:00:01 INFO tourbook.services.checkout: Checkout operation: ...

Checkout and webhook helpers log a single line of ``key=value`` pairs and
pass the same fields as ``extra`` for JSON log shippers.
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
NO_CORRELATION_ID = "no-correlation-id"

# Webhook processing result -> log level; anything else logs at INFO
_WEBHOOK_LEVELS = {
    "error": logging.ERROR,
    "duplicate": logging.WARNING,
    "skipped": logging.WARNING,
}


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Bind a correlation ID to the current context, generating one if absent."""
    cid = correlation_id or str(uuid.uuid4())
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def clear_correlation_id() -> None:
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Attach the current correlation ID to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


class StructuredFormatter(logging.Formatter):
    """Prefix each formatted line with ``[correlation-id]``."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return f"[{record.correlation_id}] {super().format(record)}"


def configure_logging(level: str = "INFO") -> None:
    """Install the structured formatter on the root logger.

    Calling it again only updates the level.
    """
    root = logging.getLogger()
    root.setLevel(level)

    if any(isinstance(h.formatter, StructuredFormatter) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter(DEFAULT_FORMAT))
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Return a logger carrying the correlation ID filter."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())
    return logger


def _emit(
    logger: logging.Logger,
    level: int,
    headline: str,
    fields: list[tuple[str, Any]],
    context: dict[str, Any],
) -> None:
    parts = [headline] + [f"{label}={value}" for label, value in fields if value not in (None, "")]
    logger.log(level, " | ".join(parts), extra=context)


def log_checkout_operation(
    logger: logging.Logger,
    operation: str,
    *,
    session_id: str | None = None,
    tour_slug: str | None = None,
    amount_minor: int | None = None,
    currency: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log one checkout step (session creation, mock checkout, provider failure).

    Logs at ERROR when ``error`` is given, INFO otherwise.
    """
    fields: list[tuple[str, Any]] = [
        ("session_id", session_id),
        ("tour_slug", tour_slug),
        ("amount_minor", amount_minor),
        ("currency", currency),
        ("error", error),
        *extra.items(),
    ]
    context = {"operation": operation, **{k: v for k, v in fields if v not in (None, "")}}
    level = logging.ERROR if error else logging.INFO
    _emit(logger, level, f"Checkout operation: {operation}", fields, context)


def log_webhook_event(
    logger: logging.Logger,
    event_type: str,
    event_id: str,
    *,
    session_id: str | None = None,
    booking_status: str | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a webhook delivery and what it did to the booking.

    ``result`` is the ledger outcome (received, success, duplicate, skipped,
    error) and picks the level: error at ERROR, duplicate and skipped at
    WARNING.
    """
    fields: list[tuple[str, Any]] = [
        ("result", result),
        ("session", session_id),
        ("status", booking_status),
        ("error", error),
    ]
    context: dict[str, Any] = {"event_type": event_type, "event_id": event_id, **extra}
    context.update(
        {
            key: value
            for key, value in (
                ("session_id", session_id),
                ("booking_status", booking_status),
                ("result", result),
                ("error", error),
            )
            if value
        }
    )
    level = _WEBHOOK_LEVELS.get(result or "", logging.INFO)
    _emit(logger, level, f"Webhook event: {event_type} ({event_id})", fields, context)
