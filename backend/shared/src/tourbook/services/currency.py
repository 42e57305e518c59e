"""Currency conversion from catalog prices to payment-provider minor units.

Catalog prices are whole amounts in the catalog reference currency (COP by
default). The Stripe account settles in a single currency, so each price is
converted with a configured, slowly-changing exchange rate rather than live
FX. All arithmetic uses Decimal to avoid float rounding drift.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

# Currencies Stripe treats as having no minor unit
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
        "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
    }
)

# Currencies with three decimal places
THREE_DECIMAL_CURRENCIES = frozenset({"BHD", "JOD", "KWD", "OMR", "TND"})

MIN_PROVIDER_AMOUNT = 1


def minor_unit_exponent(currency: str) -> int:
    """Number of decimal places of a currency's minor unit."""
    code = currency.upper()
    if code in ZERO_DECIMAL_CURRENCIES:
        return 0
    if code in THREE_DECIMAL_CURRENCIES:
        return 3
    return 2


def to_provider_minor_units(
    catalog_price: int,
    catalog_currency: str,
    provider_currency: str,
    exchange_rate: float | Decimal | str,
) -> int:
    """Convert a catalog price into provider minor units.

    When the catalog currency already equals the provider currency the price
    passes through unchanged (the catalog integer is treated as minor units).
    Otherwise the price is divided by the exchange rate (catalog units per one
    provider unit), scaled to the provider's minor unit and rounded half-up.
    The result is never below one minor unit.

    Args:
        catalog_price: Price in the catalog currency (non-negative integer)
        catalog_currency: ISO code of the catalog currency
        provider_currency: ISO code the Stripe account settles in
        exchange_rate: Catalog units per one provider unit

    Returns:
        Amount in provider minor units, at least 1.

    Raises:
        ValueError: If the price is negative or the exchange rate is not positive.

    Example:
        >>> to_provider_minor_units(100000, "COP", "USD", 4000)
        2500
    """
    if catalog_price < 0:
        raise ValueError(f"Catalog price must be non-negative, got {catalog_price}")

    if catalog_currency.upper() == provider_currency.upper():
        return max(MIN_PROVIDER_AMOUNT, int(catalog_price))

    try:
        rate = Decimal(str(exchange_rate))
    except InvalidOperation:
        raise ValueError(f"Exchange rate is not a number: {exchange_rate!r}") from None
    if not rate.is_finite() or rate <= 0:
        raise ValueError(f"Exchange rate must be positive, got {exchange_rate!r}")

    scale = Decimal(10) ** minor_unit_exponent(provider_currency)
    amount = (Decimal(catalog_price) / rate * scale).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return max(MIN_PROVIDER_AMOUNT, int(amount))


def format_minor_amount(amount_minor: int, currency: str) -> str:
    """Format a minor-unit amount for display, e.g. ``USD 75.00``."""
    exponent = minor_unit_exponent(currency)
    value = Decimal(amount_minor).scaleb(-exponent)
    return f"{currency.upper()} {value:,.{exponent}f}"
