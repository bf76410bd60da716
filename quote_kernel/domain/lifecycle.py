"""
Quotation lifecycle (``quote_kernel.domain.lifecycle``).

Responsibility
--------------
The closed set of quotation statuses and the table of legal
``(status, action)`` pairs, each with an optional guard.  Evaluating an
action yields a tagged ``TransitionResult``; applying it (and its side
effects) is the job of ``services.quotation_service``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Status is the sole authority for which actions are legal.
* Any pair missing from ``QUOTATION_TRANSITIONS`` is rejected.
* ``rejected``, ``expired`` and ``converted`` have no outgoing edges.
* ``view`` on a viewed quotation is an accepted no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class QuotationStatus(str, Enum):
    """Quotation lifecycle states."""

    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CONVERTED = "converted"


class QuotationAction(str, Enum):
    """Actions that move (or keep) a quotation through its lifecycle."""

    SEND = "send"
    VIEW = "view"
    ACCEPT = "accept"
    REJECT = "reject"
    EXPIRE = "expire"
    CONVERT = "convert"
    EDIT = "edit"
    DELETE = "delete"


TERMINAL_STATUSES: frozenset[QuotationStatus] = frozenset({
    QuotationStatus.REJECTED,
    QuotationStatus.EXPIRED,
    QuotationStatus.CONVERTED,
})


@dataclass(frozen=True)
class Guard:
    """A condition that must hold before a transition fires."""

    name: str
    description: str


HAS_LINE_ITEMS = Guard("has_line_items", "quotation has at least one line item")
WITHIN_VALIDITY = Guard("within_validity", "now is not past valid_until")
PAST_VALIDITY = Guard("past_validity", "now is past valid_until")
STOCK_RESERVED = Guard(
    "stock_reserved", "an active reservation exists or a new one succeeds"
)


@dataclass(frozen=True)
class Transition:
    """A legal lifecycle edge.

    ``to_status`` is None for actions that remove the row (delete).
    ``no_op`` marks edges that change nothing and do not bump the version.
    """

    from_status: QuotationStatus
    action: QuotationAction
    to_status: QuotationStatus | None
    guard: Guard | None = None
    no_op: bool = False


_S = QuotationStatus
_A = QuotationAction

_TRANSITIONS: tuple[Transition, ...] = (
    Transition(_S.DRAFT, _A.SEND, _S.SENT, HAS_LINE_ITEMS),
    Transition(_S.DRAFT, _A.EDIT, _S.DRAFT),
    Transition(_S.DRAFT, _A.DELETE, None),
    Transition(_S.DRAFT, _A.EXPIRE, _S.EXPIRED, PAST_VALIDITY),
    Transition(_S.SENT, _A.VIEW, _S.VIEWED),
    Transition(_S.SENT, _A.ACCEPT, _S.ACCEPTED, WITHIN_VALIDITY),
    Transition(_S.SENT, _A.REJECT, _S.REJECTED),
    Transition(_S.SENT, _A.EXPIRE, _S.EXPIRED, PAST_VALIDITY),
    Transition(_S.VIEWED, _A.VIEW, _S.VIEWED, no_op=True),
    Transition(_S.VIEWED, _A.ACCEPT, _S.ACCEPTED, WITHIN_VALIDITY),
    Transition(_S.VIEWED, _A.REJECT, _S.REJECTED),
    Transition(_S.VIEWED, _A.EXPIRE, _S.EXPIRED, PAST_VALIDITY),
    Transition(_S.ACCEPTED, _A.CONVERT, _S.CONVERTED, STOCK_RESERVED),
    Transition(_S.ACCEPTED, _A.EXPIRE, _S.EXPIRED, PAST_VALIDITY),
)

QUOTATION_TRANSITIONS: dict[tuple[QuotationStatus, QuotationAction], Transition] = {
    (t.from_status, t.action): t for t in _TRANSITIONS
}


@dataclass(frozen=True)
class TransitionContext:
    """Facts the pure guards need; gathered by the service."""

    now: datetime
    valid_until: datetime
    line_item_count: int


@dataclass(frozen=True)
class TransitionResult:
    """Tagged outcome of evaluating an action against the table."""

    success: bool
    transition: Transition | None = None
    reason: str = ""

    @classmethod
    def ok(cls, transition: Transition) -> "TransitionResult":
        return cls(success=True, transition=transition)

    @classmethod
    def rejected(cls, reason: str) -> "TransitionResult":
        return cls(success=False, reason=reason)

    @property
    def to_status(self) -> QuotationStatus | None:
        return self.transition.to_status if self.transition else None

    @property
    def is_no_op(self) -> bool:
        return bool(self.transition and self.transition.no_op)


def _guard_holds(guard: Guard, context: TransitionContext) -> bool:
    if guard is HAS_LINE_ITEMS:
        return context.line_item_count > 0
    if guard is WITHIN_VALIDITY:
        return context.now <= context.valid_until
    if guard is PAST_VALIDITY:
        return context.now > context.valid_until
    # STOCK_RESERVED is decided by the inventory coordinator at apply time.
    return True


def evaluate_transition(
    status: QuotationStatus,
    action: QuotationAction,
    context: TransitionContext,
) -> TransitionResult:
    """Look up ``(status, action)`` and evaluate its pure guard."""
    status = QuotationStatus(status)
    action = QuotationAction(action)
    transition = QUOTATION_TRANSITIONS.get((status, action))
    if transition is None:
        if status in TERMINAL_STATUSES:
            return TransitionResult.rejected(f"'{status.value}' is terminal")
        return TransitionResult.rejected(
            f"'{action.value}' is not allowed from '{status.value}'"
        )
    if transition.guard is not None and not _guard_holds(transition.guard, context):
        return TransitionResult.rejected(f"guard '{transition.guard.name}' failed")
    return TransitionResult.ok(transition)


def allowed_actions(status: QuotationStatus) -> frozenset[QuotationAction]:
    status = QuotationStatus(status)
    return frozenset(a for (s, a) in QUOTATION_TRANSITIONS if s is status)
