"""Services for the quotation kernel (write side)."""

from quote_kernel.services.catalog import CatalogReader, LineItemRequest
from quote_kernel.services.currency_converter import (
    CurrencyConverter,
    HttpRateProvider,
    RateProvider,
    StaticRateProvider,
)
from quote_kernel.services.customer_directory import (
    CustomerDirectory,
    CustomerSnapshot,
    SqlCustomerDirectory,
)
from quote_kernel.services.document_factory import DocumentFactory
from quote_kernel.services.inventory_coordinator import (
    InventoryReservationCoordinator,
    ReservationHandle,
    ReservationResult,
)
from quote_kernel.services.permission_gate import Actor, PermissionGate, RolePermissionGate
from quote_kernel.services.quotation_service import (
    QuotationEdit,
    QuotationLifecycle,
    QuotationRequest,
)
from quote_kernel.services.sequence_service import DocumentNumbering, SequenceService

__all__ = [
    "Actor",
    "CatalogReader",
    "CurrencyConverter",
    "CustomerDirectory",
    "CustomerSnapshot",
    "DocumentFactory",
    "DocumentNumbering",
    "HttpRateProvider",
    "InventoryReservationCoordinator",
    "LineItemRequest",
    "PermissionGate",
    "QuotationEdit",
    "QuotationLifecycle",
    "QuotationRequest",
    "RateProvider",
    "ReservationHandle",
    "ReservationResult",
    "RolePermissionGate",
    "SequenceService",
    "SqlCustomerDirectory",
    "StaticRateProvider",
]
