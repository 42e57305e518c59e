"""Unit tests for catalog price conversion."""

from decimal import Decimal

import pytest

from tourbook.services.currency import (
    format_minor_amount,
    minor_unit_exponent,
    to_provider_minor_units,
)


class TestToProviderMinorUnits:
    """Catalog price -> provider minor units."""

    def test_reference_scenario(self) -> None:
        """100,000 COP at 4000 COP/USD is 25.00 USD; three persons charge 75.00 USD."""
        unit_amount = to_provider_minor_units(100000, "COP", "USD", 4000)

        assert unit_amount == 2500
        assert unit_amount * 3 == 7500

    def test_rounds_half_up(self) -> None:
        # 50 / 4000 * 100 = 1.25 -> 1
        assert to_provider_minor_units(50, "COP", "USD", 4000) == 1
        # 12345 / 4000 * 100 = 308.625 -> 309
        assert to_provider_minor_units(12345, "COP", "USD", 4000) == 309
        # 12340 / 4000 * 100 = 308.5 -> 309
        assert to_provider_minor_units(12340, "COP", "USD", 4000) == 309

    def test_never_below_one_minor_unit(self) -> None:
        assert to_provider_minor_units(0, "COP", "USD", 4000) == 1
        assert to_provider_minor_units(1, "COP", "USD", 4000) == 1

    def test_same_currency_passes_through(self) -> None:
        assert to_provider_minor_units(7500, "usd", "USD", 4000) == 7500

    def test_zero_decimal_provider_currency(self) -> None:
        # 100,000 COP at 27 COP/JPY = 3703.7 JPY -> 3704
        assert to_provider_minor_units(100000, "COP", "JPY", 27) == 3704

    def test_accepts_decimal_and_string_rates(self) -> None:
        assert to_provider_minor_units(100000, "COP", "USD", Decimal("4000")) == 2500
        assert to_provider_minor_units(100000, "COP", "USD", "4000.0") == 2500

    @pytest.mark.parametrize("rate", [0, -1, "abc", float("inf"), float("nan")])
    def test_rejects_invalid_rate(self, rate: object) -> None:
        with pytest.raises(ValueError):
            to_provider_minor_units(100000, "COP", "USD", rate)  # type: ignore[arg-type]

    def test_rejects_negative_price(self) -> None:
        with pytest.raises(ValueError):
            to_provider_minor_units(-1, "COP", "USD", 4000)


class TestFormatting:
    def test_minor_unit_exponent(self) -> None:
        assert minor_unit_exponent("usd") == 2
        assert minor_unit_exponent("JPY") == 0
        assert minor_unit_exponent("KWD") == 3

    def test_format_minor_amount(self) -> None:
        assert format_minor_amount(7500, "usd") == "USD 75.00"
        assert format_minor_amount(123456, "USD") == "USD 1,234.56"
        assert format_minor_amount(3704, "JPY") == "JPY 3,704"
