"""Read-only query selectors."""

from quote_kernel.selectors.base import BaseSelector
from quote_kernel.selectors.quotation_selector import (
    QuotationPage,
    QuotationSelector,
    QuotationView,
    ReceiptView,
    StatusChange,
)

__all__ = [
    "BaseSelector",
    "QuotationPage",
    "QuotationSelector",
    "QuotationView",
    "ReceiptView",
    "StatusChange",
]
