"""Shared utilities for the tour booking backend."""

from .logging import (
    configure_logging,
    get_correlation_id,
    get_logger,
    log_checkout_operation,
    log_webhook_event,
    set_correlation_id,
)

__all__ = [
    "configure_logging",
    "get_correlation_id",
    "get_logger",
    "log_checkout_operation",
    "log_webhook_event",
    "set_correlation_id",
]
