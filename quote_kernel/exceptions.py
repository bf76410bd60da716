"""
Typed Exception Hierarchy for the Quotation Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from QuoteKernelError:

    QuoteKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidCurrencyError
    |
    +-- CurrencyError
    |   +-- CurrencyMismatchError
    |   +-- RateUnavailableError
    |
    +-- LifecycleError
    |   +-- InvalidTransitionError
    |   +-- AlreadyConvertedError
    |
    +-- ConcurrencyError
    |   +-- StaleVersionError
    |
    +-- InventoryError
    |   +-- InsufficientStockError
    |   +-- UnitUnavailableError
    |
    +-- NotFoundError
    |   +-- QuotationNotFoundError
    |   +-- CatalogItemNotFoundError
    |   +-- CustomerNotFoundError
    |
    +-- ForbiddenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                    | When Raised
----------------|-------------------------|-----------------------------------------
Validation      | VALIDATION_FAILED       | Malformed or missing input
                | INVALID_CURRENCY        | Not a valid ISO 4217 code
----------------|-------------------------|-----------------------------------------
Currency        | CURRENCY_MISMATCH       | Money arithmetic across currencies
                | RATE_UNAVAILABLE        | No fresh or cached rate for a currency
----------------|-------------------------|-----------------------------------------
Lifecycle       | INVALID_TRANSITION      | Action not legal for the current status
                | ALREADY_CONVERTED       | Invoice requested for non-accepted quote
----------------|-------------------------|-----------------------------------------
Concurrency     | STALE_VERSION           | Supplied version no longer current
----------------|-------------------------|-----------------------------------------
Inventory       | INSUFFICIENT_STOCK      | Not enough available quantity
                | UNIT_UNAVAILABLE        | Referenced VIN is not active
----------------|-------------------------|-----------------------------------------
Lookup          | QUOTATION_NOT_FOUND     | Quotation id does not exist
                | CATALOG_ITEM_NOT_FOUND  | Catalog item id does not exist
                | CUSTOMER_NOT_FOUND      | Customer unknown or inactive
----------------|-------------------------|-----------------------------------------
Authorization   | FORBIDDEN               | PermissionGate denied the action

===============================================================================
HANDLING PATTERNS
===============================================================================

1. RETRY ON StaleVersionError (re-read, then re-apply):

    try:
        lifecycle.accept(actor, quotation_id, expected_version=view.version)
    except StaleVersionError as e:
        view = lifecycle.get(actor, quotation_id)

2. SURFACE INVENTORY FAILURES TO THE USER (structured data, not messages):

    except InsufficientStockError as e:
        return {"error": e.code, "item": e.stock_item_id,
                "requested": e.requested, "available": e.available}
"""


class QuoteKernelError(Exception):
    """
    Base exception for all quotation kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "QUOTE_KERNEL_ERROR"


# Validation


class ValidationError(QuoteKernelError):
    """Malformed or missing input."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidCurrencyError(ValidationError):
    """Currency code is not a valid ISO 4217 code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid currency code: {currency!r}", field="currency")


# Currency


class CurrencyError(QuoteKernelError):
    """Base exception for currency-related errors."""

    code: str = "CURRENCY_ERROR"


class CurrencyMismatchError(CurrencyError):
    """Operation mixed two currencies without converting first."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, left: str, right: str, operation: str = "combine"):
        self.left = left
        self.right = right
        self.operation = operation
        super().__init__(f"Cannot {operation} Money in {left} and {right}")


class RateUnavailableError(CurrencyError):
    """No usable exchange rate for a currency."""

    code: str = "RATE_UNAVAILABLE"

    def __init__(self, base_currency: str, target_currency: str, reason: str = ""):
        self.base_currency = base_currency
        self.target_currency = target_currency
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"Exchange rate {base_currency}->{target_currency} unavailable{detail}"
        )


# Lifecycle


class LifecycleError(QuoteKernelError):
    """Base exception for lifecycle errors."""

    code: str = "LIFECYCLE_ERROR"


class InvalidTransitionError(LifecycleError):
    """Action is not legal for the quotation's current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, quotation_id: str, status: str, action: str, reason: str = ""):
        self.quotation_id = quotation_id
        self.status = status
        self.action = action
        self.reason = reason
        detail = f" ({reason})" if reason else ""
        super().__init__(
            f"Cannot {action} quotation {quotation_id} in status '{status}'{detail}"
        )


class AlreadyConvertedError(LifecycleError):
    """Invoice requested for a quotation that is not currently accepted."""

    code: str = "ALREADY_CONVERTED"

    def __init__(self, quotation_id: str, status: str):
        self.quotation_id = quotation_id
        self.status = status
        super().__init__(
            f"Quotation {quotation_id} cannot be invoiced from status '{status}'"
        )


# Concurrency


class ConcurrencyError(QuoteKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class StaleVersionError(ConcurrencyError):
    """Optimistic concurrency conflict: the caller's version is no longer current."""

    code: str = "STALE_VERSION"

    def __init__(self, quotation_id: str, expected_version: int, actual_version: int | None = None):
        self.quotation_id = quotation_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        actual = f", current is {actual_version}" if actual_version is not None else ""
        super().__init__(
            f"Quotation {quotation_id} was modified concurrently: "
            f"expected version {expected_version}{actual}"
        )


# Inventory


class InventoryError(QuoteKernelError):
    """Base exception for reservation failures."""

    code: str = "INVENTORY_ERROR"


class InsufficientStockError(InventoryError):
    """Available quantity is lower than requested."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, stock_item_id: str, requested: int, available: int | None = None):
        self.stock_item_id = stock_item_id
        self.requested = requested
        self.available = available
        have = f", available {available}" if available is not None else ""
        super().__init__(
            f"Insufficient stock for item {stock_item_id}: requested {requested}{have}"
        )


class UnitUnavailableError(InventoryError):
    """One or more serialized units are no longer active."""

    code: str = "UNIT_UNAVAILABLE"

    def __init__(self, stock_item_id: str, vins: tuple[str, ...]):
        self.stock_item_id = stock_item_id
        self.vins = vins
        super().__init__(
            f"Serialized units unavailable for item {stock_item_id}: {', '.join(vins)}"
        )


# Lookup


class NotFoundError(QuoteKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class QuotationNotFoundError(NotFoundError):
    """Quotation with given ID was not found."""

    code: str = "QUOTATION_NOT_FOUND"

    def __init__(self, quotation_id: str):
        self.quotation_id = quotation_id
        super().__init__(f"Quotation not found: {quotation_id}")


class CatalogItemNotFoundError(NotFoundError):
    """Catalog item with given ID was not found."""

    code: str = "CATALOG_ITEM_NOT_FOUND"

    def __init__(self, catalog_item_id: str):
        self.catalog_item_id = catalog_item_id
        super().__init__(f"Catalog item not found: {catalog_item_id}")


class CustomerNotFoundError(NotFoundError):
    """Customer is unknown to the directory or inactive."""

    code: str = "CUSTOMER_NOT_FOUND"

    def __init__(self, customer_ref: str):
        self.customer_ref = customer_ref
        super().__init__(f"Customer not found: {customer_ref}")


# Authorization


class ForbiddenError(QuoteKernelError):
    """PermissionGate denied the action."""

    code: str = "FORBIDDEN"

    def __init__(self, actor_id: str, action: str, resource_type: str):
        self.actor_id = actor_id
        self.action = action
        self.resource_type = resource_type
        super().__init__(
            f"Actor {actor_id} is not allowed to {action} {resource_type}"
        )
