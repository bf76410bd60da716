"""
BaseService -- abstract base for kernel services that write.

Responsibility:
    Provides the common constructor and session-handling contract.  All
    concrete writing services receive a SQLAlchemy ``Session`` that they
    use via ``session.flush()`` -- never ``session.commit()``.

Invariants enforced:
    Services flush within the caller's transaction and never commit or
    rollback it themselves.  Partial work inside one operation is undone
    by rolling back a SAVEPOINT (``session.begin_nested()``), which leaves
    the caller's outer transaction intact.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for writing services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only methods -- those live in
          ``quote_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
