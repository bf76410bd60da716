"""
SequenceService -- monotonic counters and human-readable document numbers.

Responsibility:
    Issues strictly increasing integers per named sequence and formats them
    into quotation, invoice and receipt numbers.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by QuotationLifecycle (quotation numbers) and DocumentFactory
    (invoice and receipt numbers).

Invariants enforced:
    - The increment is a single ``UPDATE ... SET current_value =
      current_value + 1`` statement; the row lock it takes serializes
      concurrent allocations until the caller's transaction ends.
      The aggregate-max-plus-one anti-pattern is never used.
    - Transactional: the increment is only visible after the caller
      commits.  Rollback returns the value.

Failure modes:
    - IntegrityError: concurrent first use of a sequence name (handled via
      savepoint rollback and retry).
"""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quote_config.schema import NumberingConfig
from quote_kernel.logging_config import get_logger
from quote_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.

    Usage:
        seq = SequenceService(session).next_value("invoice:2026")
    """

    QUOTATION = "quotation"
    INVOICE = "invoice"
    RECEIPT = "receipt"

    def __init__(self, session: Session):
        self._session = session

    def _increment(self, sequence_name: str) -> bool:
        result = self._session.execute(
            update(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .values(current_value=SequenceCounter.current_value + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Postconditions:
            - Returns an integer > 0, strictly greater than any value
              previously returned for this name.
        """
        if not self._increment(sequence_name):
            # First use of this sequence; another thread may race us to it.
            savepoint = self._session.begin_nested()
            try:
                self._session.add(SequenceCounter(name=sequence_name, current_value=1))
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                if not self._increment(sequence_name):
                    raise

        value = self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": value},
        )
        return value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None."""
        return self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()


class DocumentNumbering:
    """
    Formats sequence values into document numbers.

    ``QUO-2026-000001`` and ``CI-2026-0001`` restart every calendar year;
    receipts (``PN000001``) use a single running sequence.
    """

    def __init__(self, sequences: SequenceService, config: NumberingConfig):
        self._sequences = sequences
        self._config = config

    def quotation_number(self, now: datetime) -> str:
        value = self._sequences.next_value(f"{SequenceService.QUOTATION}:{now.year}")
        return f"{self._config.quotation_prefix}-{now.year}-{value:06d}"

    def invoice_number(self, now: datetime) -> str:
        value = self._sequences.next_value(f"{SequenceService.INVOICE}:{now.year}")
        return f"{self._config.invoice_prefix}-{now.year}-{value:04d}"

    def receipt_number(self) -> str:
        value = self._sequences.next_value(SequenceService.RECEIPT)
        return f"{self._config.receipt_prefix}{value:06d}"
