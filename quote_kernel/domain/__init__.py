"""
Pure domain layer.

This module contains value objects, the pricing engine and the lifecycle
transition table, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from quote_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from quote_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from quote_kernel.domain.lifecycle import (
    QUOTATION_TRANSITIONS,
    TERMINAL_STATUSES,
    QuotationAction,
    QuotationStatus,
    Transition,
    TransitionContext,
    TransitionResult,
    evaluate_transition,
)
from quote_kernel.domain.pricing import (
    AdditionalExpense,
    DiscountSpec,
    DiscountType,
    ExpenseKind,
    LineItem,
    PricedBreakdown,
    PricingEngine,
)
from quote_kernel.domain.values import Currency, ExchangeRate, Money

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "CurrencyInfo",
    "CurrencyRegistry",
    "Currency",
    "ExchangeRate",
    "Money",
    "AdditionalExpense",
    "DiscountSpec",
    "DiscountType",
    "ExpenseKind",
    "LineItem",
    "PricedBreakdown",
    "PricingEngine",
    "QUOTATION_TRANSITIONS",
    "TERMINAL_STATUSES",
    "QuotationAction",
    "QuotationStatus",
    "Transition",
    "TransitionContext",
    "TransitionResult",
    "evaluate_transition",
]
