"""
Module: quote_kernel.models.quotation
Responsibility: ORM persistence for quotations and their owned child rows
    (line items, additional expenses, status history).
Architecture position: Kernel > Models.  Inherits from TrackedBase.  Converts
    to and from the pure domain types in ``quote_kernel.domain.pricing``.

Invariants enforced:
    - ``version`` is the SQLAlchemy ``version_id_col``: every UPDATE is issued
      as ``... WHERE id = :id AND version = :old``.  The counter is bumped by
      ``bump_version()`` so that child-only edits still touch the row.
      A concurrent writer that lost the race gets StaleDataError at flush.
    - Line items and expenses are owned value collections ordered by
      ``position``; they are replaced wholesale, never edited in place.
    - ``locked_rates`` is written once at creation and never rewritten.
    - Monetary columns are Numeric(38, 9); the locked rate is stored as exact
      text (DecimalString) and always equals ``locked_rates[currency]``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quote_kernel.db.base import Base, DecimalString, TrackedBase, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from quote_kernel.domain.pricing import (
        AdditionalExpense,
        DiscountSpec,
        LineItem,
        PricedBreakdown,
    )


class QuotationModel(TrackedBase):
    """
    A priced, customer-facing proposal with a lifecycle status.

    Guarantees:
        - quotation_number is unique.
        - Customer contact fields are a snapshot taken at creation.
        - Breakdown columns always hold the output of one PricingEngine run.
    """

    __tablename__ = "quotations"

    __table_args__ = (
        Index("idx_quotation_status", "status"),
        Index("idx_quotation_customer", "customer_ref"),
        Index("idx_quotation_valid_until", "status", "valid_until"),
    )

    quotation_number: Mapped[str] = mapped_column(
        String(40), nullable=False, unique=True,
    )

    # Customer snapshot
    customer_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    customer_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_trn: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Pricing inputs
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    exchange_rate_locked: Mapped[Decimal] = mapped_column(
        DecimalString(), nullable=False,
    )
    locked_rates: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    discount_type: Mapped[str] = mapped_column(
        String(50), nullable=False, default="percentage",
    )
    discount_value: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )
    vat_rate: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    # Priced breakdown
    subtotal: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    taxable_base: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    vat_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    expenses_total: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    grand_total: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    valid_until: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    viewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    converted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    lines: Mapped[list[QuotationLineModel]] = relationship(
        "QuotationLineModel",
        order_by="QuotationLineModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    expenses: Mapped[list[QuotationExpenseModel]] = relationship(
        "QuotationExpenseModel",
        order_by="QuotationExpenseModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    history: Mapped[list[QuotationStatusHistoryModel]] = relationship(
        "QuotationStatusHistoryModel",
        order_by="QuotationStatusHistoryModel.sequence",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    # Bumped explicitly by the lifecycle service; SQLAlchemy still guards
    # every UPDATE/DELETE with "AND version = :previous".
    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

    def __repr__(self) -> str:
        return (
            f"<Quotation {self.quotation_number} status={self.status} "
            f"v{self.version}>"
        )

    # -- domain conversion ---------------------------------------------------

    def line_items(self) -> tuple[LineItem, ...]:
        return tuple(line.to_line_item() for line in self.lines)

    def additional_expenses(self) -> tuple[AdditionalExpense, ...]:
        return tuple(exp.to_expense() for exp in self.expenses)

    def discount_spec(self) -> DiscountSpec:
        from quote_kernel.domain.pricing import DiscountSpec, DiscountType

        return DiscountSpec(DiscountType(self.discount_type), self.discount_value)

    def rates(self) -> dict[str, Decimal]:
        return {code: Decimal(rate) for code, rate in self.locked_rates.items()}

    def breakdown(self) -> PricedBreakdown:
        from quote_kernel.domain.pricing import PricedBreakdown
        from quote_kernel.domain.values import Money, round_money

        def m(amount: Decimal) -> Money:
            return Money(round_money(Decimal(amount)), self.currency)

        return PricedBreakdown(
            subtotal=m(self.subtotal),
            discount_amount=m(self.discount_amount),
            taxable_base=m(self.taxable_base),
            vat_amount=m(self.vat_amount),
            expenses_total=m(self.expenses_total),
            grand_total=m(self.grand_total),
        )

    def apply_breakdown(self, breakdown: PricedBreakdown) -> None:
        self.subtotal = breakdown.subtotal.amount
        self.discount_amount = breakdown.discount_amount.amount
        self.taxable_base = breakdown.taxable_base.amount
        self.vat_amount = breakdown.vat_amount.amount
        self.expenses_total = breakdown.expenses_total.amount
        self.grand_total = breakdown.grand_total.amount

    def bump_version(self) -> int:
        self.version = self.version + 1
        return self.version

    def replace_inputs(
        self,
        line_items: tuple[LineItem, ...],
        discount: DiscountSpec,
        vat_rate: Decimal | None,
        expenses: tuple[AdditionalExpense, ...],
    ) -> None:
        """Replace the owned collections and discount/VAT inputs."""
        self.lines = [
            QuotationLineModel.from_line_item(position, item)
            for position, item in enumerate(line_items)
        ]
        self.expenses = [
            QuotationExpenseModel.from_expense(position, exp)
            for position, exp in enumerate(expenses)
        ]
        self.discount_type = discount.type.value
        self.discount_value = discount.value
        self.vat_rate = vat_rate


class QuotationLineModel(Base):
    """One line item snapshot; prices are copied from the catalog at creation."""

    __tablename__ = "quotation_lines"

    __table_args__ = (
        Index("idx_quotation_line_quotation", "quotation_id", "position"),
    )

    quotation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("quotations.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    catalog_item_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    unit_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    serialized_units: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    def to_line_item(self) -> LineItem:
        from quote_kernel.domain.pricing import LineItem
        from quote_kernel.domain.values import Money

        return LineItem(
            catalog_item_id=self.catalog_item_id,
            name=self.name,
            unit_price=Money(Decimal(self.unit_price), self.unit_currency),
            quantity=self.quantity,
            serialized_units=tuple(self.serialized_units or ()),
        )

    @classmethod
    def from_line_item(cls, position: int, item: LineItem) -> QuotationLineModel:
        return cls(
            position=position,
            catalog_item_id=item.catalog_item_id,
            name=item.name,
            unit_price=item.unit_price.amount,
            unit_currency=item.unit_price.code,
            quantity=item.quantity,
            serialized_units=list(item.serialized_units),
        )


class QuotationExpenseModel(Base):
    """Ad-hoc untaxed expense (shipping, customs, ...) attached to a quotation."""

    __tablename__ = "quotation_expenses"

    quotation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("quotations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    def to_expense(self) -> AdditionalExpense:
        from quote_kernel.domain.pricing import AdditionalExpense, ExpenseKind
        from quote_kernel.domain.values import Money

        return AdditionalExpense(
            kind=ExpenseKind(self.kind),
            description=self.description,
            amount=Money(Decimal(self.amount), self.currency),
        )

    @classmethod
    def from_expense(cls, position: int, exp: AdditionalExpense) -> QuotationExpenseModel:
        return cls(
            position=position,
            kind=exp.kind.value,
            description=exp.description,
            amount=exp.amount.amount,
            currency=exp.amount.code,
        )


class QuotationStatusHistoryModel(Base):
    """Append-only record of every applied transition."""

    __tablename__ = "quotation_status_history"

    __table_args__ = (
        Index("idx_quotation_history_quotation", "quotation_id", "sequence"),
    )

    quotation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("quotations.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<StatusHistory {self.from_status}->{self.to_status} ({self.action})>"
