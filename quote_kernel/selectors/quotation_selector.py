"""
Module: quote_kernel.selectors.quotation_selector
Responsibility: Read-only access to quotations.  Converts ORM rows to the
    frozen ``QuotationView`` DTO returned by every lifecycle operation.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only: no mutations are performed.
    - Line items, expenses and history are ordered by position / sequence.
    - ``list`` results are ordered newest first, then by quotation number,
      so pages are stable.

Failure modes:
    - QuotationNotFoundError from ``get`` / ``get_by_number`` when nothing matches.
    - ValidationError for naive date bounds or an unknown count dimension.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select

from quote_kernel.domain.lifecycle import (
    TERMINAL_STATUSES,
    QuotationAction,
    QuotationStatus,
    allowed_actions,
)
from quote_kernel.domain.pricing import (
    AdditionalExpense,
    DiscountSpec,
    LineItem,
    PricedBreakdown,
)
from quote_kernel.domain.values import Money
from quote_kernel.exceptions import QuotationNotFoundError, ValidationError
from quote_kernel.models.document import InvoiceModel, ReceiptModel
from quote_kernel.models.quotation import QuotationModel
from quote_kernel.selectors.base import BaseSelector

COUNT_DIMENSIONS = {
    "status": QuotationModel.status,
    "currency": QuotationModel.currency,
    "customer": QuotationModel.customer_ref,
    "created_by": QuotationModel.created_by_id,
}


def _date_range(column, start: datetime | None, end: datetime | None, name: str) -> list:
    clauses = []
    for bound, label in ((start, f"{name}_from"), (end, f"{name}_to")):
        if bound is not None and bound.tzinfo is None:
            raise ValidationError(f"{label} must be timezone-aware", field=label)
    if start is not None:
        clauses.append(column >= start)
    if end is not None:
        clauses.append(column <= end)
    return clauses


@dataclass(frozen=True)
class StatusChange:
    from_status: QuotationStatus | None
    to_status: QuotationStatus
    action: str
    actor_id: str
    occurred_at: datetime
    note: str | None = None


@dataclass(frozen=True)
class QuotationView:
    """Immutable snapshot of a quotation as seen by callers."""

    id: UUID
    quotation_number: str
    status: QuotationStatus
    version: int
    currency: str
    exchange_rate_locked: Decimal
    locked_rates: dict[str, Decimal]
    customer_ref: str
    customer_name: str
    customer_email: str | None
    customer_phone: str | None
    customer_address: str | None
    customer_trn: str | None
    line_items: tuple[LineItem, ...]
    discount: DiscountSpec
    vat_rate: Decimal | None
    expenses: tuple[AdditionalExpense, ...]
    breakdown: PricedBreakdown
    valid_until: datetime
    sent_at: datetime | None
    viewed_at: datetime | None
    responded_at: datetime | None
    converted_at: datetime | None
    created_at: datetime
    created_by: str
    notes: str | None
    invoice_number: str | None = None
    history: tuple[StatusChange, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def allowed_actions(self) -> frozenset[QuotationAction]:
        """Actions the transition table offers from the current status."""
        return allowed_actions(self.status)

    @classmethod
    def from_model(
        cls, model: QuotationModel, invoice_number: str | None = None
    ) -> QuotationView:
        return cls(
            id=model.id,
            quotation_number=model.quotation_number,
            status=QuotationStatus(model.status),
            version=model.version,
            currency=model.currency,
            exchange_rate_locked=Decimal(model.exchange_rate_locked),
            locked_rates=model.rates(),
            customer_ref=model.customer_ref,
            customer_name=model.customer_name,
            customer_email=model.customer_email,
            customer_phone=model.customer_phone,
            customer_address=model.customer_address,
            customer_trn=model.customer_trn,
            line_items=model.line_items(),
            discount=model.discount_spec(),
            vat_rate=Decimal(model.vat_rate) if model.vat_rate is not None else None,
            expenses=model.additional_expenses(),
            breakdown=model.breakdown(),
            valid_until=model.valid_until,
            sent_at=model.sent_at,
            viewed_at=model.viewed_at,
            responded_at=model.responded_at,
            converted_at=model.converted_at,
            created_at=model.created_at,
            created_by=model.created_by_id,
            notes=model.notes,
            invoice_number=invoice_number,
            history=tuple(
                StatusChange(
                    from_status=QuotationStatus(h.from_status) if h.from_status else None,
                    to_status=QuotationStatus(h.to_status),
                    action=h.action,
                    actor_id=h.actor_id,
                    occurred_at=h.occurred_at,
                    note=h.note,
                )
                for h in model.history
            ),
        )


@dataclass(frozen=True)
class ReceiptView:
    id: UUID
    receipt_number: str
    quotation_id: UUID
    quotation_number: str
    customer_ref: str
    amount: Money
    payment_method: str
    description: str
    received_at: datetime

    @classmethod
    def from_model(cls, model: ReceiptModel) -> ReceiptView:
        return cls(
            id=model.id,
            receipt_number=model.receipt_number,
            quotation_id=model.quotation_id,
            quotation_number=model.quotation_number,
            customer_ref=model.customer_ref,
            amount=Money(Decimal(model.amount), model.currency).round(),
            payment_method=model.payment_method,
            description=model.description,
            received_at=model.received_at,
        )


@dataclass(frozen=True)
class QuotationPage:
    items: tuple[QuotationView, ...]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


class QuotationSelector(BaseSelector[QuotationModel]):
    """Selector for quotation queries."""

    MAX_PAGE_SIZE = 200

    def get_model(
        self,
        quotation_id: UUID | str,
        refresh: bool = False,
        for_update: bool = False,
    ) -> QuotationModel:
        """Load the ORM row.

        ``refresh`` re-reads it over any cached identity; ``for_update`` takes
        a row lock (``SELECT ... FOR UPDATE``) until the transaction ends.
        SQLite ignores the lock clause; its writers are already serialized.
        """
        try:
            key = UUID(str(quotation_id))
        except ValueError as e:
            raise QuotationNotFoundError(str(quotation_id)) from e
        model = self.session.get(
            QuotationModel,
            key,
            populate_existing=refresh or for_update,
            with_for_update=for_update or None,
        )
        if model is None:
            raise QuotationNotFoundError(str(quotation_id))
        return model

    def get(self, quotation_id: UUID | str) -> QuotationView:
        model = self.get_model(quotation_id)
        return QuotationView.from_model(model, self._invoice_numbers([model.id]).get(model.id))

    def get_by_number(self, quotation_number: str) -> QuotationView:
        model = self.session.execute(
            select(QuotationModel).where(QuotationModel.quotation_number == quotation_number)
        ).scalar_one_or_none()
        if model is None:
            raise QuotationNotFoundError(quotation_number)
        return QuotationView.from_model(model, self._invoice_numbers([model.id]).get(model.id))

    def list(
        self,
        status: QuotationStatus | str | None = None,
        customer_ref: str | None = None,
        currency: str | None = None,
        limit: int = 50,
        offset: int = 0,
        created_by: str | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        valid_from: datetime | None = None,
        valid_to: datetime | None = None,
        search: str | None = None,
    ) -> QuotationPage:
        """One page of quotations matching every given filter.

        Date bounds are inclusive and must be timezone-aware.  ``search`` is
        a case-insensitive substring match on the quotation number and the
        customer's name, email and reference.
        """
        limit = max(1, min(int(limit), self.MAX_PAGE_SIZE))
        offset = max(0, int(offset))

        filters = []
        if status is not None:
            filters.append(QuotationModel.status == QuotationStatus(status).value)
        if customer_ref is not None:
            filters.append(QuotationModel.customer_ref == customer_ref)
        if currency is not None:
            filters.append(QuotationModel.currency == currency.upper())
        if created_by is not None:
            filters.append(QuotationModel.created_by_id == created_by)
        filters.extend(_date_range(QuotationModel.created_at, created_from, created_to, "created"))
        filters.extend(_date_range(QuotationModel.valid_until, valid_from, valid_to, "valid"))
        if search:
            term = search.strip()
            filters.append(
                or_(
                    QuotationModel.quotation_number.icontains(term, autoescape=True),
                    QuotationModel.customer_name.icontains(term, autoescape=True),
                    QuotationModel.customer_email.icontains(term, autoescape=True),
                    QuotationModel.customer_ref.icontains(term, autoescape=True),
                )
            )

        total = self.session.execute(
            select(func.count()).select_from(QuotationModel).where(*filters)
        ).scalar_one()
        models = self.session.execute(
            select(QuotationModel)
            .where(*filters)
            .order_by(QuotationModel.created_at.desc(), QuotationModel.quotation_number.desc())
            .limit(limit)
            .offset(offset)
        ).scalars().all()

        invoices = self._invoice_numbers(m.id for m in models)
        return QuotationPage(
            items=tuple(QuotationView.from_model(m, invoices.get(m.id)) for m in models),
            total=total,
            limit=limit,
            offset=offset,
        )

    def counts_by(self, dimension: str) -> dict[str, int]:
        """Quotation counts grouped by status, currency, customer or creator."""
        column = COUNT_DIMENSIONS.get(dimension)
        if column is None:
            raise ValidationError(
                f"cannot count by {dimension!r}; expected one of "
                f"{', '.join(sorted(COUNT_DIMENSIONS))}",
                field="dimension",
            )
        rows = self.session.execute(
            select(column, func.count()).group_by(column).order_by(column)
        ).all()
        return {value: count for value, count in rows}

    def receipts(self, quotation_id: UUID) -> list[ReceiptView]:
        rows = self.session.execute(
            select(ReceiptModel)
            .where(ReceiptModel.quotation_id == quotation_id)
            .order_by(ReceiptModel.received_at, ReceiptModel.receipt_number)
        ).scalars().all()
        return [ReceiptView.from_model(r) for r in rows]

    def overdue(self, now: datetime) -> list[tuple[UUID, int]]:
        """(id, version) of non-terminal quotations whose validity has passed."""
        open_statuses = [
            QuotationStatus.DRAFT.value,
            QuotationStatus.SENT.value,
            QuotationStatus.VIEWED.value,
            QuotationStatus.ACCEPTED.value,
        ]
        rows = self.session.execute(
            select(QuotationModel.id, QuotationModel.version)
            .where(
                QuotationModel.status.in_(open_statuses),
                QuotationModel.valid_until < now,
            )
            .order_by(QuotationModel.valid_until, QuotationModel.quotation_number)
        ).all()
        return [(row.id, row.version) for row in rows]

    def _invoice_numbers(self, quotation_ids: Iterable[UUID]) -> dict[UUID, str]:
        ids = list(quotation_ids)
        if not ids:
            return {}
        rows = self.session.execute(
            select(InvoiceModel.quotation_id, InvoiceModel.invoice_number)
            .where(InvoiceModel.quotation_id.in_(ids))
        ).all()
        return {row.quotation_id: row.invoice_number for row in rows}
