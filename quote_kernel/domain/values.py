"""
Values -- Immutable, self-validating domain value objects.

Responsibility:
    Provides the value types every monetary computation in the kernel
    funnels through: Currency, Money and ExchangeRate.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by pricing, lifecycle, services and models.

Invariants enforced:
    - Money pairs a Decimal amount with a Currency; they are never separated.
    - Floats are rejected at construction; only Decimal, int and numeric
      strings are accepted.
    - Stored precision is 2 decimal places; ``Money.round()`` rounds half-up
      to that precision and is the only sanctioned rounding step.
    - Arithmetic never mixes currencies silently (CurrencyMismatchError).

Failure modes:
    - InvalidCurrencyError on unknown ISO 4217 codes.
    - ValidationError on float or non-numeric amounts and non-positive rates.
    - CurrencyMismatchError when arithmetic mixes different currencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from quote_kernel.domain.currency import CurrencyRegistry
from quote_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidCurrencyError,
    ValidationError,
)

MONEY_DECIMAL_PLACES = 2
_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)


def to_decimal(value: Decimal | int | str, field: str = "amount") -> Decimal:
    """Coerce a value to Decimal, refusing floats."""
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(
            f"{field} must be Decimal, int or str, got {type(value).__name__}",
            field=field,
        )
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"Invalid {field}: {value!r}", field=field) from e
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite: {value!r}", field=field)
    return result


def round_money(amount: Decimal) -> Decimal:
    """Round half-up to the fixed monetary precision."""
    return amount.quantize(_QUANTUM, rounding=ROUND_HALF_UP)


@dataclass(frozen=True, slots=True)
class Currency:
    """
    ISO 4217 currency code value object.

    Validated and normalized (uppercased) on construction.
    """

    code: str

    def __post_init__(self) -> None:
        try:
            normalized = CurrencyRegistry.normalize(self.code)
        except ValueError as e:
            raise InvalidCurrencyError(str(self.code)) from e
        object.__setattr__(self, "code", normalized)

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Contract:
        Pairs a Decimal amount with its Currency. This is the canonical
        representation of monetary values throughout the kernel.

    Guarantees:
        - Immutable and hashable.
        - amount is always a finite Decimal (never float).
        - Addition, subtraction and comparison require the same currency.

    Non-goals:
        - Does NOT perform currency conversion (use ExchangeRate.convert).
        - Does NOT auto-round; callers round once at the end of a computation.
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        elif not isinstance(self.currency, Currency):
            raise ValidationError(
                f"currency must be Currency or str, got {type(self.currency).__name__}",
                field="currency",
            )

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        """Factory method for creating Money."""
        return cls(amount=to_decimal(amount), currency=currency)

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        """Create a zero amount in the given currency."""
        return cls(amount=Decimal("0"), currency=currency)

    @property
    def code(self) -> str:
        return self.currency.code

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def round(self) -> Money:
        """Round half-up to 2 decimal places."""
        return Money(amount=round_money(self.amount), currency=self.currency)

    def _check_same(self, other: Money, operation: str) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.code, other.code, operation)

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_same(other, "add")
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_same(other, "subtract")
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def __neg__(self) -> Money:
        return Money(amount=-self.amount, currency=self.currency)

    def __mul__(self, factor: Decimal | int) -> Money:
        if isinstance(factor, bool) or not isinstance(factor, (Decimal, int)):
            return NotImplemented
        return Money(amount=self.amount * factor, currency=self.currency)

    def __rmul__(self, factor: Decimal | int) -> Money:
        return self.__mul__(factor)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_same(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_same(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_same(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_same(other, "compare")
        return self.amount >= other.amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"


@dataclass(frozen=True, slots=True)
class ExchangeRate:
    """
    Exchange rate between two currencies.

    Represents: 1 unit of from_currency = rate units of to_currency.
    """

    from_currency: Currency
    to_currency: Currency
    rate: Decimal

    def __post_init__(self) -> None:
        if isinstance(self.from_currency, str):
            object.__setattr__(self, "from_currency", Currency(self.from_currency))
        if isinstance(self.to_currency, str):
            object.__setattr__(self, "to_currency", Currency(self.to_currency))
        rate = to_decimal(self.rate, field="rate")
        if rate <= 0:
            raise ValidationError(f"Exchange rate must be positive: {rate}", field="rate")
        object.__setattr__(self, "rate", rate)

    @classmethod
    def of(
        cls,
        from_currency: str | Currency,
        to_currency: str | Currency,
        rate: Decimal | str | int,
    ) -> ExchangeRate:
        return cls(from_currency=from_currency, to_currency=to_currency, rate=rate)

    @classmethod
    def cross(
        cls,
        from_currency: str | Currency,
        to_currency: str | Currency,
        from_per_base: Decimal,
        to_per_base: Decimal,
    ) -> ExchangeRate:
        """Build the direct rate from two rates quoted against the same base."""
        return cls.of(from_currency, to_currency, to_decimal(to_per_base) / to_decimal(from_per_base))

    def convert(self, money: Money) -> Money:
        """
        Convert money from one currency to another using this rate.

        The result is NOT rounded; the caller rounds once at the end.

        Raises:
            CurrencyMismatchError: If money currency doesn't match from_currency.
        """
        if money.currency != self.from_currency:
            raise CurrencyMismatchError(money.code, self.from_currency.code, "convert")
        return Money(amount=money.amount * self.rate, currency=self.to_currency)

    def __str__(self) -> str:
        return f"{self.from_currency}/{self.to_currency} = {self.rate}"
