"""Invoice download endpoint.

Rebuilds the invoice PDF for a Checkout session straight from Stripe, so it
works for any session the customer can reference from the success page or
the confirmation email.
"""

import re

from fastapi import APIRouter, Depends, Query, Response

from tourbook.config import Settings
from tourbook.models import BookingError, ErrorCode, ErrorResponse
from tourbook.services import (
    InvoiceData,
    InvoiceRenderError,
    StripeNotConfiguredError,
    StripeService,
    StripeServiceError,
    build_invoice_filename,
    render_invoice_pdf,
)
from tourbook.utils.logging import get_correlation_id, get_logger

from tourbook_api.dependencies import get_app_settings, get_stripe

logger = get_logger(__name__)

router = APIRouter(tags=["invoice"])

_PLACEHOLDER = re.compile(r"^\{.+\}$")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.\-() ]+")


def is_placeholder_session_id(session_id: str | None) -> bool:
    """True for empty ids and unsubstituted templates such as {CHECKOUT_SESSION_ID}."""
    value = (session_id or "").strip()
    return not value or bool(_PLACEHOLDER.match(value))


def sanitize_filename(name: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", name)[:120] or "invoice.pdf"


@router.get(
    "/invoice/{session_id}",
    summary="Download invoice PDF",
    description="""
Render the invoice for a Checkout session as a PDF.

Pass `download=1` to receive it as an attachment instead of inline.
""",
    response_class=Response,
    responses={
        200: {"content": {"application/pdf": {}}, "description": "Invoice PDF"},
        400: {"description": "Placeholder or empty session id", "model": ErrorResponse},
        404: {"description": "Unknown checkout session", "model": ErrorResponse},
        500: {"description": "Stripe not configured or rendering failed", "model": ErrorResponse},
    },
)
async def download_invoice(
    session_id: str,
    download: bool = Query(default=False),
    stripe_service: StripeService = Depends(get_stripe),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    if is_placeholder_session_id(session_id):
        raise BookingError(
            code=ErrorCode.INVALID_REQUEST,
            details={"field": "session_id"},
            message="Invalid session_id placeholder",
        )

    try:
        session = stripe_service.retrieve_checkout_session(session_id)
    except StripeNotConfiguredError:
        raise
    except StripeServiceError as e:
        logger.warning("Invoice requested for unknown session %s: %s", session_id, e)
        raise BookingError(
            code=ErrorCode.BOOKING_NOT_FOUND,
            details={"session_id": session_id},
        ) from e

    data = InvoiceData.from_session(session, settings.site_url, settings.brand_name)
    try:
        pdf = render_invoice_pdf(data, logo_path=settings.invoice_logo_path)
    except InvoiceRenderError as e:
        raise BookingError(
            code=ErrorCode.INVOICE_RENDER_FAILED,
            details={"session_id": session_id},
        ) from e

    filename = sanitize_filename(
        build_invoice_filename(data.tour_title, data.created_at, data.brand_name)
    )
    disposition = "attachment" if download else "inline"
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={
            "Cache-Control": "no-store",
            "Content-Disposition": f'{disposition}; filename="{filename}"',
            "X-Invoice-Session": session.session_id,
            "X-Request-ID": get_correlation_id() or "",
        },
    )
