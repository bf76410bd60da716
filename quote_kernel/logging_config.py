"""
Structured JSON logging for the quotation kernel.

Every record is one JSON line: timestamp, level, logger, message, the
request-scoped context bound by the lifecycle service (actor, quotation,
expected version) and any ``extra`` fields.  Kernel errors are rendered as
a structured ``error`` object carrying their code and fields; anything else
that reaches a log call with ``exc_info`` also gets a traceback.

Usage:
    logger = get_logger("services.quotation")
    with LogContext.bind(actor_id=actor.id, quotation_id=quotation_id):
        logger.info("quotation_sent", extra={"version": 3})
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from quote_kernel.exceptions import QuoteKernelError

_LOGGER_PREFIX = "quote_kernel"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_context: ContextVar[Mapping[str, str]] = ContextVar("quote_log_context", default={})


class LogContext:
    """Request-scoped log fields, isolated per thread and per task."""

    FIELDS = frozenset({"request_id", "actor_id", "quotation_id", "expected_version"})

    @classmethod
    def _merge(cls, fields: Mapping[str, Any]) -> dict[str, str]:
        merged = dict(_context.get())
        for key, val in fields.items():
            if key in cls.FIELDS and val is not None:
                merged[key] = str(val)
        return merged

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set fields for the rest of the current context.  None and unknown keys are ignored."""
        _context.set(cls._merge(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """Set fields for the duration of the block, then restore the previous context."""
        token = _context.set(cls._merge(fields))
        try:
            yield
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _to_json(obj: Any) -> Any:
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(_to_json(v) for v in obj)
    if hasattr(obj, "to_dict"):
        # PricedBreakdown and friends
        return obj.to_dict()
    return str(obj)


def _error_payload(exc: BaseException) -> dict[str, Any]:
    error: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, QuoteKernelError):
        error["code"] = exc.code
        error.update(
            (k, v) for k, v in vars(exc).items() if not k.startswith("_") and k != "code"
        )
    return error


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())
        payload.update(
            (key, val)
            for key, val in vars(record).items()
            if key not in _STDLIB_KEYS and key not in payload
        )

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["error"] = _error_payload(exc)
            # Kernel errors are expected outcomes; their fields say enough.
            if not isinstance(exc, QuoteKernelError):
                payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the quote_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the quote_kernel logger.  Later calls are no-ops.

    ``level`` takes a logging constant or its name (``"DEBUG"``).
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(logging.getLevelName(level.upper()) if isinstance(level, str) else level)
    kernel_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    kernel_logger.addHandler(h)


def reset_logging() -> None:
    """Drop handlers and allow configure_logging to run again.  Tests only."""
    global _configured
    with _lock:
        _configured = False
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
    kernel_logger.propagate = True
