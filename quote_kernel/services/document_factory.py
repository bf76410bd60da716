"""
DocumentFactory -- invoices and receipts spawned from a quotation.

Responsibility:
    Builds downstream documents as snapshots of a quotation.  The invoice
    copies breakdown, line items, expenses, currency, locked rate and
    customer snapshot verbatim; nothing is re-priced.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the quotation
    lifecycle service inside its unit of work (convert, record_receipt).

Invariants enforced:
    - An invoice is issued only for a quotation in ``accepted`` status; the
      database additionally allows at most one invoice per quotation.
    - Invoice amounts equal the quotation breakdown to the cent.
    - Receipts are in the quotation currency, strictly positive and the
      running total never exceeds the quotation grand total.

Failure modes:
    - AlreadyConvertedError: invoice requested for a non-accepted quotation.
    - InvalidTransitionError: receipt against a quotation that is neither
      accepted nor converted.
    - ValidationError / CurrencyMismatchError: bad receipt amount.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from quote_kernel.domain.clock import Clock
from quote_kernel.domain.lifecycle import QuotationStatus
from quote_kernel.domain.values import Money
from quote_kernel.exceptions import (
    AlreadyConvertedError,
    CurrencyMismatchError,
    InvalidTransitionError,
    ValidationError,
)
from quote_kernel.logging_config import get_logger
from quote_kernel.models.document import InvoiceLineModel, InvoiceModel, ReceiptModel
from quote_kernel.models.quotation import QuotationModel
from quote_kernel.services.base import BaseService
from quote_kernel.services.sequence_service import DocumentNumbering

logger = get_logger("services.documents")

RECEIPT_STATUSES = frozenset({QuotationStatus.ACCEPTED.value, QuotationStatus.CONVERTED.value})


class DocumentFactory(BaseService):
    """Creates Invoice and Receipt rows from a quotation snapshot."""

    def __init__(self, session: Session, clock: Clock, numbering: DocumentNumbering):
        super().__init__(session)
        self._clock = clock
        self._numbering = numbering

    def create_invoice(self, quotation: QuotationModel, actor_id: str) -> InvoiceModel:
        if quotation.status != QuotationStatus.ACCEPTED.value:
            raise AlreadyConvertedError(str(quotation.id), quotation.status)

        now = self._clock.now()
        invoice = InvoiceModel(
            invoice_number=self._numbering.invoice_number(now),
            quotation_id=quotation.id,
            quotation_number=quotation.quotation_number,
            customer_ref=quotation.customer_ref,
            customer_name=quotation.customer_name,
            customer_email=quotation.customer_email,
            customer_phone=quotation.customer_phone,
            customer_address=quotation.customer_address,
            customer_trn=quotation.customer_trn,
            currency=quotation.currency,
            exchange_rate_locked=quotation.exchange_rate_locked,
            discount_type=quotation.discount_type,
            discount_value=quotation.discount_value,
            vat_rate=quotation.vat_rate,
            subtotal=quotation.subtotal,
            discount_amount=quotation.discount_amount,
            taxable_base=quotation.taxable_base,
            vat_amount=quotation.vat_amount,
            expenses_total=quotation.expenses_total,
            grand_total=quotation.grand_total,
            expenses=[
                {
                    "kind": exp.kind,
                    "description": exp.description,
                    "amount": str(exp.amount),
                    "currency": exp.currency,
                }
                for exp in quotation.expenses
            ],
            issued_at=now,
            created_by_id=actor_id,
            lines=[
                InvoiceLineModel(
                    position=line.position,
                    catalog_item_id=line.catalog_item_id,
                    name=line.name,
                    unit_price=line.unit_price,
                    unit_currency=line.unit_currency,
                    quantity=line.quantity,
                    serialized_units=list(line.serialized_units or ()),
                )
                for line in quotation.lines
            ],
        )
        self.session.add(invoice)
        self.session.flush()

        logger.info(
            "invoice_created",
            extra={
                "invoice_number": invoice.invoice_number,
                "quotation_number": quotation.quotation_number,
                "grand_total": invoice.grand_total,
                "currency": invoice.currency,
            },
        )
        return invoice

    def receipts_total(self, quotation: QuotationModel) -> Money:
        total = self.session.execute(
            select(func.coalesce(func.sum(ReceiptModel.amount), 0))
            .where(ReceiptModel.quotation_id == quotation.id)
        ).scalar_one()
        return Money(Decimal(str(total)), quotation.currency).round()

    def create_receipt(
        self,
        quotation: QuotationModel,
        amount: Money,
        payment_method: str,
        description: str,
        actor_id: str,
    ) -> ReceiptModel:
        """Record a booking or payment against an accepted or converted quotation."""
        if quotation.status not in RECEIPT_STATUSES:
            raise InvalidTransitionError(
                str(quotation.id),
                quotation.status,
                "record_receipt",
                "receipts require an accepted or converted quotation",
            )
        if amount.code != quotation.currency:
            raise CurrencyMismatchError(amount.code, quotation.currency, "record receipt in")
        amount = amount.round()
        if amount.amount <= 0:
            raise ValidationError("receipt amount must be positive", field="amount")
        if not payment_method:
            raise ValidationError("payment_method is required", field="payment_method")

        grand_total = Money(Decimal(quotation.grand_total), quotation.currency).round()
        already = self.receipts_total(quotation)
        if already + amount > grand_total:
            raise ValidationError(
                f"receipts would total {(already + amount).amount}, "
                f"exceeding grand total {grand_total.amount}",
                field="amount",
            )

        receipt = ReceiptModel(
            receipt_number=self._numbering.receipt_number(),
            quotation_id=quotation.id,
            quotation_number=quotation.quotation_number,
            customer_ref=quotation.customer_ref,
            customer_name=quotation.customer_name,
            amount=amount.amount,
            currency=quotation.currency,
            payment_method=payment_method,
            description=description or "",
            received_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(receipt)
        self.session.flush()

        logger.info(
            "receipt_recorded",
            extra={
                "receipt_number": receipt.receipt_number,
                "quotation_number": quotation.quotation_number,
                "amount": receipt.amount,
                "currency": receipt.currency,
            },
        )
        return receipt
