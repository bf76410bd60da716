"""
DocumentFactory tests.

An invoice is a verbatim snapshot of its quotation: catalog price or
exchange-rate changes after acceptance never reach it.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from quote_kernel.domain.pricing import AdditionalExpense, DiscountSpec, ExpenseKind
from quote_kernel.domain.values import Money
from quote_kernel.exceptions import AlreadyConvertedError
from quote_kernel.models.document import InvoiceModel
from quote_kernel.models.inventory import StockItemModel
from quote_kernel.models.quotation import QuotationModel
from quote_kernel.services.catalog import LineItemRequest
from quote_kernel.services.document_factory import DocumentFactory
from quote_kernel.services.sequence_service import DocumentNumbering, SequenceService
from tests.conftest import ACCOUNTANT, CUSTOMER, SALES, widget_request


@pytest.fixture
def factory(session, clock, config) -> DocumentFactory:
    return DocumentFactory(session, clock, DocumentNumbering(SequenceService(session), config.numbering))


def invoice_for(session, quotation_id) -> InvoiceModel:
    return session.execute(
        select(InvoiceModel).where(InvoiceModel.quotation_id == quotation_id)
    ).scalar_one()


def accept(lifecycle, request):
    view = lifecycle.create(SALES, request)
    view = lifecycle.send(SALES, view.id, view.version)
    return lifecycle.accept(CUSTOMER, view.id, view.version)


class TestInvoiceFidelity:
    def test_locked_rate_is_exact_after_reload(self, lifecycle, session, catalog, rate_provider):
        rate_provider.set_rate("USD", "0.2723")
        view = accept(lifecycle, widget_request(catalog, currency="USD"))

        session.expire_all()
        reloaded = session.get(QuotationModel, view.id, populate_existing=True)
        assert str(reloaded.exchange_rate_locked) == "0.2723"
        assert reloaded.exchange_rate_locked == reloaded.rates()["USD"]

        lifecycle.convert(ACCOUNTANT, view.id, view.version)
        session.expire_all()
        invoice = invoice_for(session, view.id)
        assert str(invoice.exchange_rate_locked) == "0.2723"

    def test_invoice_matches_quotation_after_price_and_rate_changes(
        self, lifecycle, session, catalog, rate_provider, converter
    ):
        request = widget_request(
            catalog,
            line_items=(
                LineItemRequest(str(catalog.widget_id), 2),
                LineItemRequest(str(catalog.usd_part_id), 1),
            ),
            discount=DiscountSpec.fixed(100),
            expenses=(AdditionalExpense(ExpenseKind.CUSTOMS, "Duty", Money.of("20", "USD")),),
        )
        view = accept(lifecycle, request)

        session.get(StockItemModel, catalog.widget_id).unit_price = Decimal("900")
        session.flush()
        rate_provider.set_rate("USD", "0.5")
        converter.clear_cache()

        converted = lifecycle.convert(ACCOUNTANT, view.id, view.version)
        invoice = invoice_for(session, view.id)

        assert invoice.invoice_number == converted.invoice_number
        assert invoice.breakdown() == view.breakdown
        # 1000 + 400 - 100 = 1300; VAT 65; customs 80
        assert invoice.breakdown().grand_total == Money.of("1445.00", "AED")
        assert invoice.currency == "AED"
        assert invoice.customer_name == view.customer_name
        assert invoice.customer_trn == view.customer_trn
        assert [line.name for line in invoice.lines] == [i.name for i in view.line_items]
        assert invoice.lines[0].unit_price == Decimal("500")
        assert invoice.lines[1].unit_currency == "USD"
        [expense] = invoice.expenses
        assert expense["kind"] == "customs"
        assert expense["currency"] == "USD"
        assert Decimal(expense["amount"]) == Decimal("20")
        assert invoice.created_by_id == ACCOUNTANT.id


class TestInvoiceGuards:
    def test_only_accepted_quotations(self, lifecycle, session, factory, catalog):
        view = lifecycle.create(SALES, widget_request(catalog))
        model = session.get(QuotationModel, view.id)
        with pytest.raises(AlreadyConvertedError) as exc:
            factory.create_invoice(model, ACCOUNTANT.id)
        assert exc.value.status == "draft"

    def test_converted_quotation_is_not_invoiced_again(self, lifecycle, session, factory, catalog):
        view = accept(lifecycle, widget_request(catalog))
        lifecycle.convert(ACCOUNTANT, view.id, view.version)

        model = session.get(QuotationModel, view.id)
        with pytest.raises(AlreadyConvertedError):
            factory.create_invoice(model, ACCOUNTANT.id)
        invoices = session.execute(
            select(InvoiceModel).where(InvoiceModel.quotation_id == view.id)
        ).scalars().all()
        assert len(invoices) == 1


class TestReceiptsTotal:
    def test_sums_recorded_receipts(self, lifecycle, session, factory, catalog):
        view = accept(lifecycle, widget_request(catalog, quantity=1))
        model = session.get(QuotationModel, view.id)
        assert factory.receipts_total(model) == Money.of("0", "AED")

        lifecycle.record_receipt(ACCOUNTANT, view.id, Money.of("100.50", "AED"), "cash")
        lifecycle.record_receipt(ACCOUNTANT, view.id, Money.of("25.25", "AED"), "cash")

        assert factory.receipts_total(model) == Money.of("125.75", "AED")
