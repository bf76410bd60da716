"""
Unit tests for Money and decimal handling.

Verifies:
- Float constructor prohibition
- Half-up rounding to 2 places
- Currency-safe arithmetic
- Exchange rate conversion without intermediate rounding
"""

from decimal import Decimal

import pytest

from quote_kernel.domain.values import (
    MONEY_DECIMAL_PLACES,
    Currency,
    ExchangeRate,
    Money,
    round_money,
    to_decimal,
)
from quote_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidCurrencyError,
    ValidationError,
)


class TestToDecimal:
    def test_accepts_str_and_int(self):
        assert to_decimal("100.50") == Decimal("100.50")
        assert to_decimal(7) == Decimal("7")

    def test_float_rejected(self):
        with pytest.raises(ValidationError) as exc:
            to_decimal(0.1, field="unit_price")
        assert exc.value.field == "unit_price"

    def test_bool_rejected(self):
        with pytest.raises(ValidationError):
            to_decimal(True)

    def test_garbage_rejected(self):
        with pytest.raises(ValidationError):
            to_decimal("not a number")

    def test_infinity_rejected(self):
        with pytest.raises(ValidationError):
            to_decimal("Infinity")


class TestRounding:
    def test_precision_is_two_places(self):
        assert MONEY_DECIMAL_PLACES == 2

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("0.005", "0.01"),
            ("0.004", "0.00"),
            ("2.675", "2.68"),
            ("-2.675", "-2.68"),
            ("10", "10.00"),
        ],
    )
    def test_half_up(self, raw, expected):
        assert round_money(Decimal(raw)) == Decimal(expected)
        assert str(round_money(Decimal(raw))) == expected

    def test_money_round_does_not_mutate(self):
        m = Money.of("1.005", "AED")
        rounded = m.round()
        assert rounded.amount == Decimal("1.01")
        assert m.amount == Decimal("1.005")


class TestMoney:
    def test_currency_string_is_normalized(self):
        assert Money.of("1", "aed").currency == Currency("AED")

    def test_invalid_currency(self):
        with pytest.raises(InvalidCurrencyError):
            Money.of("1", "XXX")

    def test_float_amount_rejected(self):
        with pytest.raises(ValidationError):
            Money(1.5, "AED")

    def test_add_and_subtract(self):
        a = Money.of("10.10", "AED")
        b = Money.of("0.90", "AED")
        assert (a + b).amount == Decimal("11.00")
        assert (a - b).amount == Decimal("9.20")

    def test_mixed_currency_add_raises(self):
        with pytest.raises(CurrencyMismatchError) as exc:
            Money.of("1", "AED") + Money.of("1", "USD")
        assert exc.value.code == "CURRENCY_MISMATCH"

    def test_mixed_currency_compare_raises(self):
        with pytest.raises(CurrencyMismatchError):
            Money.of("1", "AED") < Money.of("1", "USD")

    def test_multiply_by_int_and_decimal(self):
        m = Money.of("500", "AED")
        assert (m * 2).amount == Decimal("1000")
        assert (Decimal("0.5") * m).amount == Decimal("250.0")

    def test_multiply_by_float_unsupported(self):
        with pytest.raises(TypeError):
            Money.of("1", "AED") * 1.5

    def test_zero_and_sign(self):
        assert Money.zero("USD").is_zero
        assert (-Money.of("3", "USD")).is_negative

    def test_hashable_and_equal(self):
        assert {Money.of("1.00", "AED"), Money.of("1.00", "AED")} == {Money.of("1.00", "AED")}


class TestExchangeRate:
    def test_convert_is_unrounded(self):
        rate = ExchangeRate.of("USD", "AED", "3.6725")
        result = rate.convert(Money.of("1.01", "USD"))
        assert result.currency == Currency("AED")
        assert result.amount == Decimal("3.709225")

    def test_cross_rate_from_base_quotes(self):
        # 1 AED = 0.25 USD, 1 AED = 0.2 EUR  ->  1 USD = 0.8 EUR
        rate = ExchangeRate.cross("USD", "EUR", Decimal("0.25"), Decimal("0.2"))
        assert rate.rate == Decimal("0.8")
        assert rate.convert(Money.of("100", "USD")).amount == Decimal("80.0")

    def test_wrong_source_currency(self):
        rate = ExchangeRate.of("USD", "AED", "3.6725")
        with pytest.raises(CurrencyMismatchError):
            rate.convert(Money.of("1", "EUR"))

    def test_non_positive_rate_rejected(self):
        with pytest.raises(ValidationError):
            ExchangeRate.of("USD", "AED", "0")
