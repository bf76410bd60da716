"""
Pricing engine (``quote_kernel.domain.pricing``).

Responsibility
--------------
Turns raw quotation inputs (line items, discount, VAT rate, additional
expenses) into an immutable ``PricedBreakdown`` in the quotation currency.

Architecture position
---------------------
**Kernel domain layer** -- pure functional core.  ZERO I/O.  Exchange
rates arrive as a plain snapshot (currency -> units per 1 base currency);
the engine never talks to a rate provider.

Invariants enforced
-------------------
* Order of computation: subtotal, discount, taxable base, VAT, expenses,
  grand total.  VAT is applied to the taxable base, never the subtotal.
* A fixed discount is capped at the subtotal; the taxable base is never
  negative.
* Expenses are untaxed.
* Per-item products are kept exact; every reported field is rounded
  half-up to 2 places once.  ``taxable_base`` and ``grand_total`` are
  derived from the rounded parts so both identities hold exactly::

      taxable_base == subtotal - discount_amount
      grand_total  == taxable_base + vat_amount + expenses_total

Failure modes
-------------
* ``ValidationError`` -- empty item list, bad quantity, bad discount.
* ``RateUnavailableError`` -- an item or expense currency is missing from
  the rate snapshot.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from quote_kernel.domain.values import Currency, Money, round_money, to_decimal
from quote_kernel.exceptions import RateUnavailableError, ValidationError

HUNDRED = Decimal("100")


class ExpenseKind(str, Enum):
    SHIPPING = "shipping"
    CUSTOMS = "customs"
    INSURANCE = "insurance"
    FEES = "fees"
    OTHER = "other"
    NONE = "none"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True)
class LineItem:
    """One catalog entry on a quotation.

    ``serialized_units`` holds VINs for serialized items; when present its
    length must equal ``quantity``.
    """

    catalog_item_id: str
    name: str
    unit_price: Money
    quantity: int
    serialized_units: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValidationError("quantity must be an integer", field="quantity")
        if self.quantity < 1:
            raise ValidationError(
                f"quantity must be at least 1, got {self.quantity}", field="quantity"
            )
        if self.unit_price.is_negative:
            raise ValidationError("unit_price must not be negative", field="unit_price")
        units = tuple(self.serialized_units)
        object.__setattr__(self, "serialized_units", units)
        if units:
            if len(units) != self.quantity:
                raise ValidationError(
                    f"quantity {self.quantity} does not match "
                    f"{len(units)} serialized units",
                    field="serialized_units",
                )
            if len(set(units)) != len(units):
                raise ValidationError(
                    "serialized units must be unique", field="serialized_units"
                )

    @property
    def is_serialized(self) -> bool:
        return bool(self.serialized_units)

    @property
    def line_total(self) -> Money:
        """Unrounded total in the item's own currency."""
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class AdditionalExpense:
    kind: ExpenseKind
    description: str
    amount: Money

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", ExpenseKind(self.kind))
        if self.amount.is_negative:
            raise ValidationError("expense amount must not be negative", field="amount")


@dataclass(frozen=True)
class DiscountSpec:
    """Discount applied to the subtotal.

    Percentage values are in [0, 100].  Fixed values are non-negative and
    expressed in the quotation currency.
    """

    type: DiscountType
    value: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", DiscountType(self.type))
        value = to_decimal(self.value, field="discount")
        if value < 0:
            raise ValidationError("discount must not be negative", field="discount")
        if self.type is DiscountType.PERCENTAGE and value > HUNDRED:
            raise ValidationError(
                f"percentage discount must be between 0 and 100, got {value}",
                field="discount",
            )
        object.__setattr__(self, "value", value)

    @classmethod
    def none(cls) -> DiscountSpec:
        return cls(DiscountType.PERCENTAGE, Decimal("0"))

    @classmethod
    def percentage(cls, value: Decimal | str | int) -> DiscountSpec:
        return cls(DiscountType.PERCENTAGE, to_decimal(value, field="discount"))

    @classmethod
    def fixed(cls, value: Decimal | str | int) -> DiscountSpec:
        return cls(DiscountType.FIXED, to_decimal(value, field="discount"))


@dataclass(frozen=True)
class PricedBreakdown:
    """Immutable pricing result; all amounts in the quotation currency."""

    subtotal: Money
    discount_amount: Money
    taxable_base: Money
    vat_amount: Money
    expenses_total: Money
    grand_total: Money

    @property
    def currency(self) -> Currency:
        return self.grand_total.currency

    def to_dict(self) -> dict[str, Any]:
        return {
            "currency": self.currency.code,
            "subtotal": str(self.subtotal.amount),
            "discount_amount": str(self.discount_amount.amount),
            "taxable_base": str(self.taxable_base.amount),
            "vat_amount": str(self.vat_amount.amount),
            "expenses_total": str(self.expenses_total.amount),
            "grand_total": str(self.grand_total.amount),
        }


class PricingEngine:
    """Pure pricing of quotation inputs."""

    def price(
        self,
        line_items: Sequence[LineItem],
        discount: DiscountSpec,
        vat_rate: Decimal | None,
        expenses: Sequence[AdditionalExpense],
        currency: Currency | str,
        rates: Mapping[str, Decimal] | None = None,
    ) -> PricedBreakdown:
        if isinstance(currency, str):
            currency = Currency(currency)
        if not line_items:
            raise ValidationError(
                "at least one line item is required", field="line_items"
            )
        if vat_rate is not None:
            vat_rate = to_decimal(vat_rate, field="vat_rate")
            if vat_rate < 0 or vat_rate > HUNDRED:
                raise ValidationError(
                    f"vat_rate must be between 0 and 100, got {vat_rate}",
                    field="vat_rate",
                )
        rates = rates or {}
        vins = [vin for item in line_items for vin in item.serialized_units]
        if len(set(vins)) != len(vins):
            raise ValidationError(
                "a serialized unit may appear only once per quotation",
                field="serialized_units",
            )

        raw_subtotal = sum(
            (self._convert(item.line_total, currency, rates) for item in line_items),
            Decimal("0"),
        )
        subtotal = round_money(raw_subtotal)

        if discount.type is DiscountType.PERCENTAGE:
            discount_amount = round_money(subtotal * discount.value / HUNDRED)
        else:
            discount_amount = round_money(min(discount.value, subtotal))

        taxable_base = subtotal - discount_amount

        if vat_rate is None:
            vat_amount = round_money(Decimal("0"))
        else:
            vat_amount = round_money(taxable_base * vat_rate / HUNDRED)

        raw_expenses = sum(
            (self._convert(exp.amount, currency, rates) for exp in expenses),
            Decimal("0"),
        )
        expenses_total = round_money(raw_expenses)

        grand_total = taxable_base + vat_amount + expenses_total

        return PricedBreakdown(
            subtotal=Money(subtotal, currency),
            discount_amount=Money(discount_amount, currency),
            taxable_base=Money(taxable_base, currency),
            vat_amount=Money(vat_amount, currency),
            expenses_total=Money(expenses_total, currency),
            grand_total=Money(grand_total, currency),
        )

    @staticmethod
    def _convert(
        money: Money, target: Currency, rates: Mapping[str, Decimal]
    ) -> Decimal:
        # Single combined rate per conversion: rates[target] / rates[source].
        if money.currency == target:
            return money.amount
        try:
            source_rate = rates[money.code]
            target_rate = rates[target.code]
        except KeyError as e:
            raise RateUnavailableError(
                money.code, target.code, f"{e.args[0]} missing from rate snapshot"
            ) from e
        return money.amount * to_decimal(target_rate, field="rate") / to_decimal(
            source_rate, field="rate"
        )


def required_currencies(
    line_items: Sequence[LineItem],
    expenses: Sequence[AdditionalExpense],
    currency: Currency | str,
) -> frozenset[str]:
    """Every currency code a breakdown in ``currency`` needs a rate for."""
    code = currency.code if isinstance(currency, Currency) else Currency(currency).code
    codes = {code}
    codes.update(item.unit_price.code for item in line_items)
    codes.update(exp.amount.code for exp in expenses)
    return frozenset(codes)
