"""Tests for quote_kernel.db.engine transactional helpers."""

import pytest
from sqlalchemy import event, select

from quote_kernel.db import engine as db_engine_module
from quote_kernel.db.engine import get_engine, session_scope
from quote_kernel.models.customer import CustomerModel


def _customer(ref: str) -> CustomerModel:
    return CustomerModel(customer_ref=ref, name=ref, created_by_id="test")


def _refs() -> list[str]:
    with session_scope() as s:
        return list(s.execute(select(CustomerModel.customer_ref)).scalars())


def test_session_scope_commits(db_engine):
    with session_scope() as s:
        s.add(_customer("C-1"))
    assert _refs() == ["C-1"]


def test_session_scope_rolls_back_on_error(db_engine):
    with pytest.raises(RuntimeError):
        with session_scope() as s:
            s.add(_customer("C-2"))
            s.flush()
            raise RuntimeError("abort")
    assert _refs() == []


def test_uninitialized_engine(monkeypatch):
    monkeypatch.setattr(db_engine_module, "_engine", None)
    with pytest.raises(RuntimeError):
        get_engine()


def test_sqlite_transactions_begin_immediate(db_engine):
    if db_engine.dialect.name != "sqlite":
        pytest.skip("SQLite only")
    statements = []

    @event.listens_for(db_engine, "before_cursor_execute")
    def _capture(conn, cursor, statement, *args):
        statements.append(statement)

    try:
        with session_scope() as s:
            s.execute(select(CustomerModel.id)).all()
    finally:
        event.remove(db_engine, "before_cursor_execute", _capture)
    assert "BEGIN IMMEDIATE" in statements
