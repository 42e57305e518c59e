"""FastAPI application for the tour booking backend.

This package provides REST endpoints for:
- Checkout session creation
- Stripe webhook reception
- Invoice download and booking lookup
- Liveness
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from tourbook import __version__
from tourbook.config import get_settings
from tourbook.utils.logging import configure_logging, get_logger

from tourbook_api.exceptions import register_exception_handlers
from tourbook_api.middleware import CORRELATION_ID_HEADER, CorrelationIdMiddleware
from tourbook_api.routes import bookings_router, checkout_router, invoice_router, webhooks_router

settings = get_settings()
configure_logging(settings.log_level)
logger = get_logger(__name__)

app = FastAPI(
    title="Tourbook API",
    description="Tour checkout and payment reconciliation API",
    version=__version__,
)

# Public site plus local development frontends
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(
        dict.fromkeys([settings.site_url, "http://localhost:3000", "http://127.0.0.1:3000"])
    ),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[
        CORRELATION_ID_HEADER,
        "X-Request-ID",
        "X-Stripe-Locale",
        "X-Invoice-Session",
        "Content-Disposition",
    ],
)
app.add_middleware(CorrelationIdMiddleware)

# Register exception handlers for consistent error responses
register_exception_handlers(app)

app.include_router(checkout_router, prefix="/api")
app.include_router(invoice_router, prefix="/api")
app.include_router(bookings_router, prefix="/api")
# Webhook path is configured in the Stripe dashboard, outside /api
app.include_router(webhooks_router)


@app.get("/api/ping")
async def ping() -> dict[str, Any]:
    """Liveness check."""
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "service": "tourbook-api",
    }


# Lambda handler - Mangum wraps FastAPI for AWS Lambda + API Gateway
handler = Mangum(app, lifespan="off")


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = True) -> None:
    """Run the FastAPI server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to listen on (default: 8080)
        reload: Enable hot reload for development (default: True)
    """
    import uvicorn

    if reload:
        # Use string reference for reload mode (uvicorn requirement)
        uvicorn.run(
            "tourbook_api.main:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["backend/api/src", "backend/shared/src"],
        )
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
