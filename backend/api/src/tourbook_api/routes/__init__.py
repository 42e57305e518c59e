"""API routes package.

Routers are organized by domain:

- checkout: Checkout session creation
- webhooks: Stripe webhook receiver and configuration health
- invoice: Invoice PDF download
- bookings: Booking status lookup

The checkout, invoice and bookings routers are registered in main.py with
the /api prefix; the webhooks router owns its /webhooks/payments path.
"""

from tourbook_api.routes.bookings import router as bookings_router
from tourbook_api.routes.checkout import router as checkout_router
from tourbook_api.routes.invoice import router as invoice_router
from tourbook_api.routes.webhooks import router as webhooks_router

__all__ = [
    "bookings_router",
    "checkout_router",
    "invoice_router",
    "webhooks_router",
]
