"""
Module: quote_kernel.models.document
Responsibility: Downstream financial documents spawned from a quotation --
    customer invoices (with copied lines) and payment receipts.
Architecture position: Kernel > Models.  Written only by DocumentFactory.

Invariants enforced:
    - At most one invoice per quotation (UNIQUE quotation_id).
    - Invoice amounts are copied from the quotation breakdown, never
      recomputed.
    - Document numbers are unique.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quote_kernel.db.base import Base, DecimalString, TrackedBase, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from quote_kernel.domain.pricing import PricedBreakdown


class InvoiceModel(TrackedBase):
    """Customer invoice issued on conversion of an accepted quotation."""

    __tablename__ = "invoices"

    invoice_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    quotation_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("quotations.id"), nullable=False, unique=True,
    )
    quotation_number: Mapped[str] = mapped_column(String(40), nullable=False)

    customer_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    customer_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_trn: Mapped[str | None] = mapped_column(String(50), nullable=True)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    exchange_rate_locked: Mapped[Decimal] = mapped_column(DecimalString(), nullable=False)
    discount_type: Mapped[str] = mapped_column(String(50), nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    vat_rate: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    taxable_base: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    vat_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    expenses_total: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    grand_total: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # [{"kind", "description", "amount", "currency"}, ...] as quoted
    expenses: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    issued_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="issued")

    lines: Mapped[list[InvoiceLineModel]] = relationship(
        "InvoiceLineModel",
        order_by="InvoiceLineModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def breakdown(self) -> PricedBreakdown:
        from quote_kernel.domain.pricing import PricedBreakdown
        from quote_kernel.domain.values import Money

        def m(amount: Decimal) -> Money:
            return Money(Decimal(amount), self.currency).round()

        return PricedBreakdown(
            subtotal=m(self.subtotal),
            discount_amount=m(self.discount_amount),
            taxable_base=m(self.taxable_base),
            vat_amount=m(self.vat_amount),
            expenses_total=m(self.expenses_total),
            grand_total=m(self.grand_total),
        )

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} total={self.grand_total} {self.currency}>"


class InvoiceLineModel(Base):
    """Line copied verbatim from the quotation."""

    __tablename__ = "invoice_lines"

    __table_args__ = (
        Index("idx_invoice_line_invoice", "invoice_id", "position"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    catalog_item_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    unit_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    serialized_units: Mapped[list] = mapped_column(JSON, nullable=False, default=list)


class ReceiptModel(TrackedBase):
    """Booking or payment receipt recorded against a quotation."""

    __tablename__ = "receipts"

    __table_args__ = (
        Index("idx_receipt_quotation", "quotation_id"),
    )

    receipt_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    quotation_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("quotations.id"), nullable=False,
    )
    quotation_number: Mapped[str] = mapped_column(String(40), nullable=False)
    customer_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    received_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<Receipt {self.receipt_number} {self.amount} {self.currency}>"
