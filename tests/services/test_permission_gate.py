"""RolePermissionGate tests against the packaged role table."""

import pytest

from quote_kernel.services.permission_gate import Actor, get_permission_for_action
from tests.conftest import ACCOUNTANT, ADMIN, CUSTOMER, NOBODY, SALES, SYSTEM


@pytest.mark.parametrize(
    "actor, action, allowed",
    [
        (SALES, "create", True),
        (SALES, "send", True),
        (SALES, "convert", False),
        (SALES, "record_receipt", False),
        (ACCOUNTANT, "convert", True),
        (ACCOUNTANT, "record_receipt", True),
        (ACCOUNTANT, "create", False),
        (CUSTOMER, "view", True),
        (CUSTOMER, "accept", True),
        (CUSTOMER, "reject", True),
        (CUSTOMER, "get", False),
        (SYSTEM, "expire_overdue", True),
        (SYSTEM, "accept", False),
        (ADMIN, "delete", True),
        (NOBODY, "get", False),
        (ACCOUNTANT, "receipts", True),
        (SALES, "counts", True),
        (CUSTOMER, "counts", False),
    ],
)
def test_role_table(gate, actor, action, allowed):
    assert gate.authorize(actor, action, "quotation") is allowed


def test_roles_combine(gate):
    actor = Actor("both", ("sales", "accountant"))
    assert gate.authorize(actor, "create", "quotation")
    assert gate.authorize(actor, "convert", "quotation")


def test_unmapped_action_is_denied(gate, captured_logs):
    assert not gate.authorize(ADMIN, "archive", "quotation")
    assert any(r["message"] == "permission_unmapped" for r in captured_logs())


def test_denial_is_logged(gate, captured_logs):
    gate.authorize(CUSTOMER, "convert", "quotation")
    denied = [r for r in captured_logs() if r["message"] == "permission_denied"]
    assert denied[0]["permission"] == "quotation.convert"


def test_permission_mapping():
    assert get_permission_for_action("quotation", "list") == "quotation.read"
    assert get_permission_for_action("invoice", "create") is None
