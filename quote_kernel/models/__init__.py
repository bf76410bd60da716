"""ORM models for the quotation kernel."""

from quote_kernel.models.customer import CustomerModel
from quote_kernel.models.document import InvoiceLineModel, InvoiceModel, ReceiptModel
from quote_kernel.models.inventory import SerializedUnitModel, StockItemModel, UnitStatus
from quote_kernel.models.quotation import (
    QuotationExpenseModel,
    QuotationLineModel,
    QuotationModel,
    QuotationStatusHistoryModel,
)
from quote_kernel.models.reservation import (
    ReservationStatus,
    StockReservationLineModel,
    StockReservationModel,
)
from quote_kernel.models.sequence import SequenceCounter

__all__ = [
    "CustomerModel",
    "InvoiceLineModel",
    "InvoiceModel",
    "ReceiptModel",
    "SerializedUnitModel",
    "StockItemModel",
    "UnitStatus",
    "QuotationExpenseModel",
    "QuotationLineModel",
    "QuotationModel",
    "QuotationStatusHistoryModel",
    "ReservationStatus",
    "StockReservationLineModel",
    "StockReservationModel",
    "SequenceCounter",
]
