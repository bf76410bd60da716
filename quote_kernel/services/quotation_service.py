"""
QuotationLifecycle -- the imperative shell around quotations.

Responsibility:
    Exposes every quotation operation (create, edit, get, get_by_number,
    list, counts, send, view, accept, reject, expire, expire_overdue,
    convert, duplicate, delete, record_receipt, receipts).  Each one
    authorizes the actor, evaluates the pure transition table, applies side
    effects through its collaborators and returns a frozen ``QuotationView``.

Architecture position:
    Kernel > Services -- imperative shell.  Composes:
        PricingEngine (pure)            -- create, edit, duplicate
        CurrencyConverter               -- rate snapshot at create/duplicate
        InventoryReservationCoordinator -- accept, convert, expire
        DocumentFactory                 -- convert, record_receipt
        QuotationSelector               -- reads and returned views

Invariants enforced:
    - PermissionGate is consulted before any read or write; a denial raises
      ForbiddenError and touches nothing.
    - Every mutating operation runs inside a SAVEPOINT.  A failure rolls
      back the status change, the side effects and the version bump
      together; the caller's outer transaction stays usable.
    - The caller's ``expected_version`` is compared before any side effect,
      and again by the ORM at flush (``version_id_col``).  Either mismatch
      surfaces as StaleVersionError.
    - Rates are locked once at creation; edits re-price with the locked
      snapshot, never with live rates.
    - The rate provider is only consulted outside any transaction this
      service opened (create and duplicate read first, release, then fetch).
    - Every applied transition appends one status history row.

Failure modes:
    - ForbiddenError, QuotationNotFoundError, InvalidTransitionError,
      StaleVersionError, InsufficientStockError / UnitUnavailableError,
      RateUnavailableError, ValidationError.

Usage:
    lifecycle = QuotationLifecycle(session, converter, gate, clock, config)
    view = lifecycle.create(actor, QuotationRequest(...))
    view = lifecycle.send(actor, view.id, expected_version=view.version)
    session.commit()
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from quote_config.schema import QuoteConfig
from quote_kernel.domain.clock import Clock
from quote_kernel.domain.lifecycle import (
    QuotationAction,
    QuotationStatus,
    Transition,
    TransitionContext,
    evaluate_transition,
)
from quote_kernel.domain.pricing import (
    AdditionalExpense,
    DiscountSpec,
    LineItem,
    PricedBreakdown,
    PricingEngine,
    required_currencies,
)
from quote_kernel.domain.values import Currency, Money, to_decimal
from quote_kernel.exceptions import (
    ConcurrencyError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    StaleVersionError,
    ValidationError,
)
from quote_kernel.logging_config import LogContext, get_logger
from quote_kernel.models.quotation import QuotationModel, QuotationStatusHistoryModel
from quote_kernel.selectors.quotation_selector import (
    QuotationPage,
    QuotationSelector,
    QuotationView,
    ReceiptView,
)
from quote_kernel.services.catalog import CatalogReader, LineItemRequest
from quote_kernel.services.currency_converter import CurrencyConverter
from quote_kernel.services.customer_directory import (
    CustomerDirectory,
    CustomerSnapshot,
    SqlCustomerDirectory,
)
from quote_kernel.services.document_factory import DocumentFactory
from quote_kernel.services.inventory_coordinator import InventoryReservationCoordinator
from quote_kernel.services.permission_gate import Actor, PermissionGate
from quote_kernel.services.sequence_service import DocumentNumbering, SequenceService

logger = get_logger("services.quotation")

RESOURCE_TYPE = "quotation"


@dataclass(frozen=True)
class QuotationRequest:
    """Inputs for a new quotation.

    ``vat_rate=None`` falls back to the configured default; pass
    ``Decimal("0")`` for a quotation without VAT.
    """

    customer_ref: str
    currency: str
    line_items: tuple[LineItemRequest, ...]
    discount: DiscountSpec = field(default_factory=DiscountSpec.none)
    vat_rate: Decimal | None = None
    expenses: tuple[AdditionalExpense, ...] = ()
    notes: str | None = None
    valid_until: datetime | None = None


@dataclass(frozen=True)
class QuotationEdit:
    """Changes to a draft.  ``None`` keeps the current value."""

    line_items: tuple[LineItemRequest, ...] | None = None
    discount: DiscountSpec | None = None
    vat_rate: Decimal | None = None
    expenses: tuple[AdditionalExpense, ...] | None = None
    notes: str | None = None
    valid_until: datetime | None = None


class QuotationLifecycle:
    """Applies quotation transitions and their side effects."""

    def __init__(
        self,
        session: Session,
        converter: CurrencyConverter,
        permission_gate: PermissionGate,
        clock: Clock,
        config: QuoteConfig,
        catalog: CatalogReader | None = None,
        customers: CustomerDirectory | None = None,
        inventory: InventoryReservationCoordinator | None = None,
        documents: DocumentFactory | None = None,
    ):
        self.session = session
        self._converter = converter
        self._gate = permission_gate
        self._clock = clock
        self._config = config
        self._pricing = PricingEngine()
        self._selector = QuotationSelector(session)
        self._catalog = catalog or CatalogReader(session)
        self._customers = customers or SqlCustomerDirectory(session)
        self._inventory = inventory or InventoryReservationCoordinator(session, clock)
        self._numbering = DocumentNumbering(SequenceService(session), config.numbering)
        self._documents = documents or DocumentFactory(session, clock, self._numbering)

    # =========================================================================
    # Plumbing
    # =========================================================================

    def _authorize(self, actor: Actor, action: str) -> None:
        if not self._gate.authorize(actor, action, RESOURCE_TYPE):
            raise ForbiddenError(actor.id, action, RESOURCE_TYPE)

    @contextmanager
    def _unit_of_work(
        self, quotation_id: UUID | None = None, expected_version: int | None = None
    ) -> Iterator[None]:
        try:
            with LogContext.bind(expected_version=expected_version), self.session.begin_nested():
                yield
        except StaleDataError as e:
            logger.warning(
                "quotation_version_conflict",
                extra={"quotation_id": str(quotation_id), "expected_version": expected_version},
            )
            raise StaleVersionError(str(quotation_id), expected_version or 0) from e

    def _load(
        self,
        quotation_id: UUID | str,
        expected_version: int | None,
        for_update: bool = False,
    ) -> QuotationModel:
        model = self._selector.get_model(quotation_id, refresh=True, for_update=for_update)
        if expected_version is not None and model.version != expected_version:
            raise StaleVersionError(str(model.id), expected_version, model.version)
        return model

    def _check(self, model: QuotationModel, action: QuotationAction) -> Transition:
        result = evaluate_transition(
            QuotationStatus(model.status),
            action,
            TransitionContext(
                now=self._clock.now(),
                valid_until=model.valid_until,
                line_item_count=len(model.lines),
            ),
        )
        if not result.success:
            raise InvalidTransitionError(str(model.id), model.status, action.value, result.reason)
        return result.transition

    def _record(
        self,
        model: QuotationModel,
        from_status: str | None,
        action: str,
        actor: Actor,
        note: str | None = None,
    ) -> None:
        model.history.append(
            QuotationStatusHistoryModel(
                sequence=len(model.history) + 1,
                from_status=from_status,
                to_status=model.status,
                action=action,
                actor_id=actor.id,
                occurred_at=self._clock.now(),
                note=note,
            )
        )

    def _apply(
        self,
        model: QuotationModel,
        transition: Transition,
        actor: Actor,
        note: str | None = None,
    ) -> None:
        from_status = model.status
        model.status = transition.to_status.value
        model.updated_by_id = actor.id
        model.bump_version()
        self._record(model, from_status, transition.action.value, actor, note)

    def _view(self, model: QuotationModel, invoice_number: str | None = None) -> QuotationView:
        return QuotationView.from_model(model, invoice_number)

    def _resolve_vat(self, vat_rate: Decimal | None) -> Decimal | None:
        if vat_rate is None:
            vat_rate = self._config.quotation.default_vat_rate
        return to_decimal(vat_rate, field="vat_rate") if vat_rate is not None else None

    def _validity(self, now: datetime, valid_until: datetime | None) -> datetime:
        if valid_until is None:
            return now + timedelta(days=self._config.quotation.validity_days)
        if valid_until.tzinfo is None:
            raise ValidationError("valid_until must be timezone-aware", field="valid_until")
        if valid_until <= now:
            raise ValidationError("valid_until must be in the future", field="valid_until")
        return valid_until

    def _price_with_locked_rates(
        self,
        model: QuotationModel,
        line_items: Sequence[LineItem],
        discount: DiscountSpec,
        vat_rate: Decimal | None,
        expenses: Sequence[AdditionalExpense],
    ) -> PricedBreakdown:
        locked = model.rates()
        missing = required_currencies(line_items, expenses, model.currency) - set(locked)
        if missing:
            raise ValidationError(
                f"no locked exchange rate for {', '.join(sorted(missing))}",
                field="currency",
            )
        return self._pricing.price(
            line_items, discount, vat_rate, expenses, model.currency, locked
        )

    def _lock_rates(
        self,
        opened_here: bool,
        line_items: Sequence[LineItem],
        expenses: Sequence[AdditionalExpense],
        currency: str,
    ) -> dict[str, Decimal]:
        """Fetch the rate snapshot with no database transaction held by this call.

        The catalog and customer reads that precede it open a transaction
        (on SQLite, ``BEGIN IMMEDIATE`` takes the write lock), so when this
        call opened it, it is released before the provider is consulted.
        A transaction the caller already had open is left alone.
        """
        if opened_here and self.session.in_transaction():
            self.session.rollback()
        return self._converter.snapshot(required_currencies(line_items, expenses, currency))

    def _new_quotation(
        self,
        actor: Actor,
        customer: CustomerSnapshot,
        currency: str,
        line_items: Sequence[LineItem],
        discount: DiscountSpec,
        vat_rate: Decimal | None,
        expenses: Sequence[AdditionalExpense],
        rates: dict[str, Decimal],
        notes: str | None,
        valid_until: datetime | None,
        note: str | None = None,
    ) -> QuotationModel:
        """Price with the locked ``rates`` and insert a draft.  Caller owns the unit of work."""
        if not line_items:
            raise ValidationError("at least one line item is required", field="line_items")
        now = self._clock.now()
        valid_until = self._validity(now, valid_until)
        breakdown = self._pricing.price(line_items, discount, vat_rate, expenses, currency, rates)

        model = QuotationModel(
            id=uuid4(),
            quotation_number=self._numbering.quotation_number(now),
            customer_ref=customer.customer_ref,
            customer_name=customer.name,
            customer_email=customer.email,
            customer_phone=customer.phone,
            customer_address=customer.address,
            customer_trn=customer.trn,
            currency=currency,
            exchange_rate_locked=rates[currency],
            locked_rates={code: str(rate) for code, rate in rates.items()},
            status=QuotationStatus.DRAFT.value,
            valid_until=valid_until,
            notes=notes,
            version=1,
            created_by_id=actor.id,
        )
        model.replace_inputs(tuple(line_items), discount, vat_rate, tuple(expenses))
        model.apply_breakdown(breakdown)
        self._record(model, None, "create", actor, note)
        self.session.add(model)
        self.session.flush()
        return model

    # =========================================================================
    # Create / edit / duplicate / delete
    # =========================================================================

    def create(self, actor: Actor, request: QuotationRequest) -> QuotationView:
        self._authorize(actor, "create")
        with LogContext.bind(actor_id=actor.id):
            opened_here = not self.session.in_transaction()
            currency = Currency(request.currency).code
            customer = self._customers.lookup(request.customer_ref)
            line_items = [self._catalog.build_line_item(r) for r in request.line_items]
            vat_rate = self._resolve_vat(request.vat_rate)
            rates = self._lock_rates(opened_here, line_items, request.expenses, currency)

            with self._unit_of_work():
                model = self._new_quotation(
                    actor,
                    customer,
                    currency,
                    line_items,
                    request.discount,
                    vat_rate,
                    request.expenses,
                    rates,
                    request.notes,
                    request.valid_until,
                )

            logger.info(
                "quotation_created",
                extra={
                    "quotation_id": str(model.id),
                    "quotation_number": model.quotation_number,
                    "currency": model.currency,
                    "grand_total": model.grand_total,
                },
            )
            return self._view(model)

    def edit(
        self,
        actor: Actor,
        quotation_id: UUID | str,
        expected_version: int,
        changes: QuotationEdit,
    ) -> QuotationView:
        """Re-price a draft with new inputs and the rates locked at creation."""
        self._authorize(actor, "edit")
        with LogContext.bind(actor_id=actor.id, quotation_id=quotation_id):
            with self._unit_of_work(quotation_id, expected_version):
                model = self._load(quotation_id, expected_version)
                self._check(model, QuotationAction.EDIT)

                if changes.line_items is not None:
                    line_items = [self._catalog.build_line_item(r) for r in changes.line_items]
                else:
                    line_items = list(model.line_items())
                if not line_items:
                    raise ValidationError(
                        "at least one line item is required", field="line_items"
                    )
                discount = changes.discount or model.discount_spec()
                vat_rate = (
                    to_decimal(changes.vat_rate, field="vat_rate")
                    if changes.vat_rate is not None
                    else model.vat_rate
                )
                expenses = (
                    changes.expenses
                    if changes.expenses is not None
                    else model.additional_expenses()
                )
                breakdown = self._price_with_locked_rates(
                    model, line_items, discount, vat_rate, expenses
                )

                model.replace_inputs(tuple(line_items), discount, vat_rate, tuple(expenses))
                model.apply_breakdown(breakdown)
                if changes.notes is not None:
                    model.notes = changes.notes
                if changes.valid_until is not None:
                    model.valid_until = self._validity(self._clock.now(), changes.valid_until)
                model.updated_by_id = actor.id
                model.bump_version()
                self._record(model, model.status, QuotationAction.EDIT.value, actor)

            logger.info(
                "quotation_edited",
                extra={
                    "quotation_number": model.quotation_number,
                    "version": model.version,
                    "grand_total": model.grand_total,
                },
            )
            return self._view(model)

    def duplicate(self, actor: Actor, quotation_id: UUID | str) -> QuotationView:
        """New draft with the source's customer and lines; rates and number are fresh."""
        self._authorize(actor, "duplicate")
        with LogContext.bind(actor_id=actor.id, quotation_id=quotation_id):
            opened_here = not self.session.in_transaction()
            source = self._load(quotation_id, None)
            source_number = source.quotation_number
            customer = CustomerSnapshot(
                customer_ref=source.customer_ref,
                name=source.customer_name,
                email=source.customer_email,
                phone=source.customer_phone,
                address=source.customer_address,
                trn=source.customer_trn,
            )
            currency = source.currency
            line_items = source.line_items()
            discount = source.discount_spec()
            vat_rate = source.vat_rate
            expenses = source.additional_expenses()
            notes = source.notes
            rates = self._lock_rates(opened_here, line_items, expenses, currency)

            with self._unit_of_work():
                model = self._new_quotation(
                    actor,
                    customer,
                    currency,
                    line_items,
                    discount,
                    vat_rate,
                    expenses,
                    rates,
                    notes,
                    None,
                    note=f"duplicated from {source_number}",
                )

            logger.info(
                "quotation_duplicated",
                extra={
                    "source_number": source_number,
                    "quotation_number": model.quotation_number,
                },
            )
            return self._view(model)

    def delete(self, actor: Actor, quotation_id: UUID | str, expected_version: int) -> None:
        self._authorize(actor, "delete")
        with LogContext.bind(actor_id=actor.id, quotation_id=quotation_id):
            with self._unit_of_work(quotation_id, expected_version):
                model = self._load(quotation_id, expected_version)
                self._check(model, QuotationAction.DELETE)
                number = model.quotation_number
                self.session.delete(model)
            logger.info("quotation_deleted", extra={"quotation_number": number})

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, actor: Actor, quotation_id: UUID | str) -> QuotationView:
        self._authorize(actor, "get")
        return self._selector.get(quotation_id)

    def get_by_number(self, actor: Actor, quotation_number: str) -> QuotationView:
        self._authorize(actor, "get")
        return self._selector.get_by_number(quotation_number)

    def list(
        self,
        actor: Actor,
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
        self._authorize(actor, "list")
        return self._selector.list(
            status=status,
            customer_ref=customer_ref,
            currency=currency,
            limit=limit,
            offset=offset,
            created_by=created_by,
            created_from=created_from,
            created_to=created_to,
            valid_from=valid_from,
            valid_to=valid_to,
            search=search,
        )

    def counts(self, actor: Actor, dimension: str) -> dict[str, int]:
        """Dashboard counts by ``status``, ``currency``, ``customer`` or ``created_by``."""
        self._authorize(actor, "counts")
        return self._selector.counts_by(dimension)

    # =========================================================================
    # Transitions
    # =========================================================================

    def send(self, actor: Actor, quotation_id: UUID | str, expected_version: int) -> QuotationView:
        self._authorize(actor, "send")
        with LogContext.bind(actor_id=actor.id, quotation_id=quotation_id):
            with self._unit_of_work(quotation_id, expected_version):
                model = self._load(quotation_id, expected_version)
                transition = self._check(model, QuotationAction.SEND)
                # Pricing must still be computable from the locked inputs.
                self._price_with_locked_rates(
                    model,
                    model.line_items(),
                    model.discount_spec(),
                    model.vat_rate,
                    model.additional_expenses(),
                )
                model.sent_at = self._clock.now()
                self._apply(model, transition, actor)

            logger.info(
                "quotation_sent",
                extra={"quotation_number": model.quotation_number, "version": model.version},
            )
            return self._view(model)

    def view(
        self,
        actor: Actor,
        quotation_id: UUID | str,
        expected_version: int | None = None,
    ) -> QuotationView:
        """Record that the customer opened the quotation.  Repeat views are no-ops."""
        self._authorize(actor, "view")
        with LogContext.bind(actor_id=actor.id, quotation_id=quotation_id):
            model = self._load(quotation_id, None)
            if model.status == QuotationStatus.VIEWED.value:
                return self._view(model)

            with self._unit_of_work(quotation_id, expected_version):
                model = self._load(quotation_id, expected_version)
                transition = self._check(model, QuotationAction.VIEW)
                if not transition.no_op:
                    model.viewed_at = self._clock.now()
                    self._apply(model, transition, actor)

            logger.info(
                "quotation_viewed",
                extra={"quotation_number": model.quotation_number, "version": model.version},
            )
            return self._view(model)

    def accept(self, actor: Actor, quotation_id: UUID | str, expected_version: int) -> QuotationView:
        """Accept within validity; reserves stock all-or-nothing."""
        self._authorize(actor, "accept")
        with LogContext.bind(actor_id=actor.id, quotation_id=quotation_id):
            with self._unit_of_work(quotation_id, expected_version):
                model = self._load(quotation_id, expected_version)
                transition = self._check(model, QuotationAction.ACCEPT)
                self._inventory.reserve(model.id, model.line_items()).unwrap()
                model.responded_at = self._clock.now()
                self._apply(model, transition, actor)

            logger.info(
                "quotation_accepted",
                extra={"quotation_number": model.quotation_number, "version": model.version},
            )
            return self._view(model)

    def reject(
        self,
        actor: Actor,
        quotation_id: UUID | str,
        expected_version: int,
        reason: str | None = None,
    ) -> QuotationView:
        self._authorize(actor, "reject")
        with LogContext.bind(actor_id=actor.id, quotation_id=quotation_id):
            with self._unit_of_work(quotation_id, expected_version):
                model = self._load(quotation_id, expected_version)
                transition = self._check(model, QuotationAction.REJECT)
                model.responded_at = self._clock.now()
                self._apply(model, transition, actor, note=reason)

            logger.info(
                "quotation_rejected",
                extra={"quotation_number": model.quotation_number, "version": model.version},
            )
            return self._view(model)

    def expire(self, actor: Actor, quotation_id: UUID | str, expected_version: int) -> QuotationView:
        self._authorize(actor, "expire")
        with LogContext.bind(actor_id=actor.id, quotation_id=quotation_id):
            return self._expire(actor, quotation_id, expected_version)

    def _expire(self, actor: Actor, quotation_id: UUID | str, expected_version: int) -> QuotationView:
        with self._unit_of_work(quotation_id, expected_version):
            model = self._load(quotation_id, expected_version)
            transition = self._check(model, QuotationAction.EXPIRE)
            released = None
            if model.status == QuotationStatus.ACCEPTED.value:
                released = self._inventory.release(model.id)
            self._apply(model, transition, actor)

        logger.info(
            "quotation_expired",
            extra={
                "quotation_number": model.quotation_number,
                "version": model.version,
                "stock_released": released is not None,
            },
        )
        return self._view(model)

    def expire_overdue(self, actor: Actor) -> list[QuotationView]:
        """Expire every non-terminal quotation whose validity has passed.

        Each quotation is expired in its own unit of work; one that changed
        concurrently is skipped and picked up by the next sweep.
        """
        self._authorize(actor, "expire_overdue")
        expired: list[QuotationView] = []
        with LogContext.bind(actor_id=actor.id):
            candidates = self._selector.overdue(self._clock.now())
            for quotation_id, version in candidates:
                try:
                    with LogContext.bind(quotation_id=quotation_id):
                        expired.append(self._expire(actor, quotation_id, version))
                except (ConcurrencyError, InvalidTransitionError, NotFoundError) as e:
                    logger.warning(
                        "quotation_expiry_skipped",
                        extra={"quotation_id": str(quotation_id), "error_code": e.code},
                    )
            logger.info(
                "quotation_expiry_sweep_completed",
                extra={"candidates": len(candidates), "expired": len(expired)},
            )
        return expired

    def convert(self, actor: Actor, quotation_id: UUID | str, expected_version: int) -> QuotationView:
        """Consume the reservation (reserving afresh if none) and issue the invoice."""
        self._authorize(actor, "convert")
        with LogContext.bind(actor_id=actor.id, quotation_id=quotation_id):
            with self._unit_of_work(quotation_id, expected_version):
                model = self._load(quotation_id, expected_version, for_update=True)
                transition = self._check(model, QuotationAction.CONVERT)
                if self._inventory.find_active(model.id) is None:
                    self._inventory.reserve(model.id, model.line_items()).unwrap()
                self._inventory.consume(model.id)
                invoice = self._documents.create_invoice(model, actor.id)
                model.converted_at = self._clock.now()
                self._apply(model, transition, actor, note=invoice.invoice_number)

            logger.info(
                "quotation_converted",
                extra={
                    "quotation_number": model.quotation_number,
                    "invoice_number": invoice.invoice_number,
                    "version": model.version,
                },
            )
            return self._view(model, invoice.invoice_number)

    # =========================================================================
    # Receipts
    # =========================================================================

    def record_receipt(
        self,
        actor: Actor,
        quotation_id: UUID | str,
        amount: Money,
        payment_method: str,
        description: str = "",
    ) -> ReceiptView:
        """Record a booking or payment; the quotation itself is unchanged."""
        self._authorize(actor, "record_receipt")
        with LogContext.bind(actor_id=actor.id, quotation_id=quotation_id):
            with self._unit_of_work(quotation_id):
                # Row lock: concurrent receipts re-check the running total in turn.
                model = self._load(quotation_id, None, for_update=True)
                receipt = self._documents.create_receipt(
                    model, amount, payment_method, description, actor.id
                )
            return ReceiptView.from_model(receipt)

    def receipts(self, actor: Actor, quotation_id: UUID | str) -> list[ReceiptView]:
        self._authorize(actor, "receipts")
        model = self._selector.get_model(quotation_id)
        return self._selector.receipts(model.id)
