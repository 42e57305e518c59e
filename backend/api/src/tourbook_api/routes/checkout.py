"""Checkout endpoint.

Turns a booking request into a hosted Stripe Checkout session. The price is
always taken from the catalog; any client-side price is ignored.
"""

from fastapi import APIRouter, Depends, Header, Response
from starlette.status import HTTP_200_OK

from tourbook.models import BookingRequest, ErrorResponse
from tourbook.services import CheckoutService
from tourbook.utils.logging import get_correlation_id, get_logger

from tourbook_api.dependencies import get_checkout_service
from tourbook_api.models import CheckoutResponse

logger = get_logger(__name__)

router = APIRouter(tags=["checkout"])


@router.post(
    "/checkout",
    summary="Create checkout session",
    description="""
Create a Stripe Checkout session for a catalog tour.

**Notes:**
- The tour is resolved by slug, then by case-insensitive title
- The amount charged is the catalog price converted to the settlement currency
- Retried requests for the same booking map to the same session (idempotency key)
- In mock mode (STRIPE_MOCK) a local success URL is returned and no session is created
""",
    response_model=CheckoutResponse,
    status_code=HTTP_200_OK,
    responses={
        200: {"description": "Session created", "model": CheckoutResponse},
        400: {"description": "Invalid booking request or date in the past", "model": ErrorResponse},
        404: {"description": "Tour not found in catalog", "model": ErrorResponse},
        502: {"description": "Payment provider error", "model": ErrorResponse},
    },
)
async def create_checkout(
    body: BookingRequest,
    response: Response,
    accept_language: str | None = Header(default=None),
    checkout: CheckoutService = Depends(get_checkout_service),
) -> CheckoutResponse:
    """Create a checkout session and return its redirect URL."""
    result = checkout.create_session(body, accept_language=accept_language)
    request_id = get_correlation_id() or ""

    response.headers["Cache-Control"] = "no-store"
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Stripe-Locale"] = result.locale

    return CheckoutResponse(url=result.url, session_id=result.session_id, request_id=request_id)
