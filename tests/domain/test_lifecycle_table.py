"""
Transition table completeness.

Every (status, action) pair is either in the table or rejected; terminal
statuses have no outgoing edges; guards decide validity-bound edges.
"""

from datetime import datetime, timedelta, timezone
from itertools import product

import pytest

from quote_kernel.domain.lifecycle import (
    QUOTATION_TRANSITIONS,
    TERMINAL_STATUSES,
    QuotationAction,
    QuotationStatus,
    TransitionContext,
    allowed_actions,
    evaluate_transition,
)

NOW = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def ctx(valid_for: timedelta = timedelta(days=3), lines: int = 1) -> TransitionContext:
    return TransitionContext(now=NOW, valid_until=NOW + valid_for, line_item_count=lines)


EXPECTED_EDGES = {
    (QuotationStatus.DRAFT, QuotationAction.SEND): QuotationStatus.SENT,
    (QuotationStatus.DRAFT, QuotationAction.EDIT): QuotationStatus.DRAFT,
    (QuotationStatus.DRAFT, QuotationAction.DELETE): None,
    (QuotationStatus.DRAFT, QuotationAction.EXPIRE): QuotationStatus.EXPIRED,
    (QuotationStatus.SENT, QuotationAction.VIEW): QuotationStatus.VIEWED,
    (QuotationStatus.SENT, QuotationAction.ACCEPT): QuotationStatus.ACCEPTED,
    (QuotationStatus.SENT, QuotationAction.REJECT): QuotationStatus.REJECTED,
    (QuotationStatus.SENT, QuotationAction.EXPIRE): QuotationStatus.EXPIRED,
    (QuotationStatus.VIEWED, QuotationAction.VIEW): QuotationStatus.VIEWED,
    (QuotationStatus.VIEWED, QuotationAction.ACCEPT): QuotationStatus.ACCEPTED,
    (QuotationStatus.VIEWED, QuotationAction.REJECT): QuotationStatus.REJECTED,
    (QuotationStatus.VIEWED, QuotationAction.EXPIRE): QuotationStatus.EXPIRED,
    (QuotationStatus.ACCEPTED, QuotationAction.CONVERT): QuotationStatus.CONVERTED,
    (QuotationStatus.ACCEPTED, QuotationAction.EXPIRE): QuotationStatus.EXPIRED,
}


def test_table_matches_expected_edges():
    assert {k: t.to_status for k, t in QUOTATION_TRANSITIONS.items()} == EXPECTED_EDGES


@pytest.mark.parametrize("status, action", list(product(QuotationStatus, QuotationAction)))
def test_every_pair_is_decided(status, action):
    # Validity window chosen so the pair's guard (if any) holds.
    window = timedelta(days=-1) if action is QuotationAction.EXPIRE else timedelta(days=1)
    result = evaluate_transition(status, action, ctx(window))
    if (status, action) in EXPECTED_EDGES:
        assert result.success
        assert result.to_status == EXPECTED_EDGES[(status, action)]
    else:
        assert not result.success
        assert result.reason


@pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
def test_terminal_statuses_have_no_actions(status):
    assert allowed_actions(status) == frozenset()
    result = evaluate_transition(status, QuotationAction.VIEW, ctx())
    assert "terminal" in result.reason


def test_repeat_view_is_no_op():
    result = evaluate_transition(QuotationStatus.VIEWED, QuotationAction.VIEW, ctx())
    assert result.success
    assert result.is_no_op
    first = evaluate_transition(QuotationStatus.SENT, QuotationAction.VIEW, ctx())
    assert not first.is_no_op


def test_send_requires_line_items():
    result = evaluate_transition(QuotationStatus.DRAFT, QuotationAction.SEND, ctx(lines=0))
    assert not result.success
    assert "has_line_items" in result.reason


class TestValidityGuards:
    def test_accept_on_last_valid_instant(self):
        result = evaluate_transition(
            QuotationStatus.SENT, QuotationAction.ACCEPT, ctx(timedelta(0))
        )
        assert result.success

    def test_accept_after_expiry_rejected(self):
        result = evaluate_transition(
            QuotationStatus.VIEWED, QuotationAction.ACCEPT, ctx(timedelta(seconds=-1))
        )
        assert not result.success

    def test_expire_before_validity_ends_rejected(self):
        result = evaluate_transition(
            QuotationStatus.SENT, QuotationAction.EXPIRE, ctx(timedelta(0))
        )
        assert not result.success

    def test_expire_after_validity(self):
        result = evaluate_transition(
            QuotationStatus.ACCEPTED, QuotationAction.EXPIRE, ctx(timedelta(seconds=-1))
        )
        assert result.success
        assert result.to_status is QuotationStatus.EXPIRED


def test_string_inputs_accepted():
    result = evaluate_transition("draft", "send", ctx())
    assert result.to_status is QuotationStatus.SENT
