"""API-specific request/response models.

Domain models (BookingRequest, Booking, ErrorResponse) live in
tourbook.models and are reused here where appropriate.

Modules:
- checkout: Checkout session response
- webhooks: Webhook acknowledgement and health responses
"""

from tourbook_api.models.checkout import CheckoutResponse
from tourbook_api.models.webhooks import WebhookHealthResponse, WebhookResponse

__all__ = ["CheckoutResponse", "WebhookHealthResponse", "WebhookResponse"]
