"""Tests for the structured logging system (quote_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from quote_kernel.domain.pricing import DiscountSpec, LineItem, PricingEngine
from quote_kernel.domain.values import Money
from quote_kernel.exceptions import InsufficientStockError
from quote_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests and restore the suite's configuration."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


def _parse_log(stream: StringIO) -> dict:
    return _parse_all_logs(stream)[0]


class TestStructuredFormatter:
    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "quote_kernel.test"
        assert "ts" in record

    def test_extra_fields_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        quotation_id = uuid4()
        get_logger("test").info(
            "quotation_created",
            extra={"quotation_id": quotation_id, "grand_total": Decimal("995.00"), "lines": 2},
        )

        record = _parse_log(stream)
        assert record["quotation_id"] == str(quotation_id)
        assert record["grand_total"] == "995.00"
        assert record["lines"] == 2

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(request_id="req-1", actor_id="sales-1", expected_version=3)
        get_logger("test").info("with_context")

        record = _parse_log(stream)
        assert record["request_id"] == "req-1"
        assert record["actor_id"] == "sales-1"
        assert record["expected_version"] == "3"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare")

        record = _parse_log(stream)
        assert "request_id" not in record
        assert "quotation_id" not in record

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise InsufficientStockError("item-1", 3, 1)
        except InsufficientStockError:
            get_logger("test").error("reserve_failed", exc_info=True)

        record = _parse_log(stream)
        error = record["error"]
        assert error["type"] == "InsufficientStockError"
        assert error["code"] == "INSUFFICIENT_STOCK"
        assert error["stock_item_id"] == "item-1"
        assert error["requested"] == 3
        assert error["available"] == 1
        assert "traceback" not in record

    def test_unexpected_exception_keeps_traceback(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            get_logger("test").error("unexpected", exc_info=True)

        record = _parse_log(stream)
        assert record["error"] == {"type": "RuntimeError", "message": "boom"}
        assert "RuntimeError: boom" in record["traceback"]

    def test_breakdown_and_sets_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        breakdown = PricingEngine().price(
            [LineItem("item", "Item", Money.of("100", "AED"), 1)],
            DiscountSpec.none(), None, [], "AED",
        )
        get_logger("test").info(
            "priced", extra={"breakdown": breakdown, "currencies": frozenset({"USD", "AED"})}
        )

        record = _parse_log(stream)
        assert record["breakdown"]["grand_total"] == "100.00"
        assert record["currencies"] == ["AED", "USD"]

    def test_debug_filtered_at_info(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.debug("hidden")
        logger.warning("second")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["first", "second"]


class TestLogContext:
    def test_clear(self):
        LogContext.set(quotation_id="q")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner", quotation_id="q-1"):
            assert LogContext.get_all() == {"actor_id": "inner", "quotation_id": "q-1"}
        assert LogContext.get_all() == {"actor_id": "outer"}

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(tenant="x"):
            assert LogContext.get_all() == {}

    def test_bind_skips_none_and_stringifies(self):
        with LogContext.bind(actor_id=None, expected_version=4):
            assert LogContext.get_all() == {"expected_version": "4"}
        assert LogContext.get_all() == {}

    def test_bind_restores_on_error(self):
        with pytest.raises(ValueError):
            with LogContext.bind(quotation_id="q-1"):
                raise ValueError("x")
        assert LogContext.get_all() == {}


class TestConfigureLogging:
    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert logging.getLogger("quote_kernel").handlers == [h1]

    def test_level_by_name(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level="warning")
        logger = get_logger("test")
        logger.info("hidden")
        logger.warning("shown")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["shown"]

    def test_child_loggers_share_configuration(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("services.quotation").debug("nested")

        record = _parse_log(stream)
        assert record["logger"] == "quote_kernel.services.quotation"
