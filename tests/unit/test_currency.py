"""Unit tests for the ISO 4217 registry and the Currency value object."""

import pytest

from quote_kernel.domain.currency import CurrencyRegistry
from quote_kernel.domain.values import Currency
from quote_kernel.exceptions import InvalidCurrencyError, ValidationError


class TestCurrencyRegistry:
    @pytest.mark.parametrize("code", ["AED", "USD", "EUR", "GBP", "SAR", "JPY"])
    def test_known_codes(self, code):
        assert CurrencyRegistry.is_valid(code)

    def test_case_and_whitespace_tolerated(self):
        assert CurrencyRegistry.normalize(" aed ") == "AED"

    @pytest.mark.parametrize("code", ["", "US", "USDX", "XYZ", None])
    def test_invalid_codes(self, code):
        assert not CurrencyRegistry.is_valid(code)
        with pytest.raises(ValueError):
            CurrencyRegistry.normalize(code)

    def test_minor_units(self):
        assert CurrencyRegistry.get_info("JPY").minor_units == 0
        assert CurrencyRegistry.get_info("KWD").minor_units == 3
        assert CurrencyRegistry.get_info("AED").minor_units == 2

    def test_all_codes(self):
        assert {"AED", "USD"} <= CurrencyRegistry.all_codes()


class TestCurrency:
    def test_normalizes(self):
        assert Currency("usd").code == "USD"
        assert str(Currency("usd")) == "USD"

    def test_invalid_raises_typed_error(self):
        with pytest.raises(InvalidCurrencyError) as exc:
            Currency("ABC")
        assert exc.value.code == "INVALID_CURRENCY"
        # also catchable as a validation failure
        assert isinstance(exc.value, ValidationError)
