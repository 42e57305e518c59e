"""Runtime configuration for the booking backend.

Settings are read from environment variables once per process and cached.
Stripe secrets are not part of Settings: they are resolved lazily by
StripeService (environment override first, SSM Parameter Store otherwise).

Usage:
    from tourbook.config import get_settings

    settings = get_settings()
    success_url = f"{settings.site_url}/checkout/success"

Testing:
    Call get_settings.cache_clear() after patching os.environ.
"""

import os
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field

PRODUCTION_ENVIRONMENTS = {"prod", "production"}

# Stripe only accepts expires_at between 30 minutes and 24 hours from now
MIN_SESSION_EXPIRY_MINUTES = 30
MAX_SESSION_EXPIRY_MINUTES = 1440

_TRUTHY = {"1", "true", "yes", "on"}


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, ""))
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, ""))
    except ValueError:
        return default


def clamp_session_expiry(minutes: int) -> int:
    """Clamp a checkout session lifetime to the range Stripe accepts."""
    return max(MIN_SESSION_EXPIRY_MINUTES, min(MAX_SESSION_EXPIRY_MINUTES, minutes))


class Settings(BaseModel):
    """Process-wide configuration values."""

    model_config = ConfigDict(frozen=True)

    environment: str = Field(default="dev", description="Environment name (dev, prod)")
    site_url: str = Field(default="http://localhost:3000", description="Public base URL")
    table_prefix: str = Field(default="tourbook-dev", description="DynamoDB table prefix")

    catalog_source: str = Field(default="static", description="static or dynamodb")
    catalog_timeout_seconds: float = Field(default=2.0, gt=0)
    catalog_currency: str = Field(default="COP")
    settlement_currency: str = Field(default="USD")
    exchange_rate: float = Field(default=4000.0, gt=0, description="Catalog units per settlement unit")
    session_expiry_minutes: int = Field(default=60)
    stripe_mock: bool = False

    email_from: str = ""
    email_fallback_from: str = "Tourbook <bookings@tourbook.example>"
    email_reply_to: str | None = None
    ses_region: str | None = None

    brand_name: str = "Tourbook"
    invoice_logo_path: str | None = None
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        """True when running with production semantics (webhook errors return 5xx)."""
        return self.environment.lower() in PRODUCTION_ENVIRONMENTS

    @property
    def manage_booking_base_url(self) -> str:
        return f"{self.site_url}/booking"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current process environment."""
        environment = os.environ.get("ENVIRONMENT", "dev")
        site_url = os.environ.get("SITE_URL", "").strip() or "http://localhost:3000"

        return cls(
            environment=environment,
            site_url=site_url.rstrip("/"),
            table_prefix=os.environ.get("DYNAMODB_TABLE_PREFIX", f"tourbook-{environment}"),
            catalog_source=os.environ.get("CATALOG_SOURCE", "static").strip().lower(),
            catalog_timeout_seconds=_float_env("CATALOG_TIMEOUT_SECONDS", 2.0),
            catalog_currency=os.environ.get("CATALOG_CURRENCY", "COP").strip().upper(),
            settlement_currency=os.environ.get("SETTLEMENT_CURRENCY", "USD").strip().upper(),
            exchange_rate=_float_env("EXCHANGE_RATE", 4000.0),
            session_expiry_minutes=clamp_session_expiry(
                _int_env("CHECKOUT_SESSION_EXPIRES_MINUTES", 60)
            ),
            stripe_mock=_bool_env("STRIPE_MOCK"),
            email_from=os.environ.get("EMAIL_FROM", "").strip(),
            email_fallback_from=os.environ.get(
                "EMAIL_FALLBACK_FROM", "Tourbook <bookings@tourbook.example>"
            ),
            email_reply_to=os.environ.get("EMAIL_REPLY_TO") or None,
            ses_region=os.environ.get("SES_REGION") or None,
            brand_name=os.environ.get("BRAND_NAME", "Tourbook"),
            invoice_logo_path=os.environ.get("INVOICE_LOGO_PATH") or None,
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the cached Settings instance."""
    return Settings.from_env()
