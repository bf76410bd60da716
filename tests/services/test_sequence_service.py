"""SequenceService and DocumentNumbering tests."""

from datetime import datetime, timezone

import pytest

from quote_config.schema import NumberingConfig
from quote_kernel.services.sequence_service import DocumentNumbering, SequenceService


@pytest.fixture
def sequences(session) -> SequenceService:
    return SequenceService(session)


class TestSequenceService:
    def test_first_value_is_one(self, sequences):
        assert sequences.current_value("test") is None
        assert sequences.next_value("test") == 1
        assert sequences.current_value("test") == 1

    def test_strictly_increasing(self, sequences):
        values = [sequences.next_value("test") for _ in range(5)]
        assert values == [1, 2, 3, 4, 5]

    def test_names_are_independent(self, sequences):
        sequences.next_value("a")
        sequences.next_value("a")
        assert sequences.next_value("b") == 1
        assert sequences.current_value("a") == 2

    def test_rollback_returns_value(self, session, sequences):
        sequences.next_value("test")
        savepoint = session.begin_nested()
        sequences.next_value("test")
        savepoint.rollback()
        assert sequences.next_value("test") == 2


class TestDocumentNumbering:
    def test_formats(self, sequences):
        numbering = DocumentNumbering(sequences, NumberingConfig())
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)

        assert numbering.quotation_number(now) == "QUO-2026-000001"
        assert numbering.quotation_number(now) == "QUO-2026-000002"
        assert numbering.invoice_number(now) == "CI-2026-0001"
        assert numbering.receipt_number() == "PN000001"

    def test_yearly_sequences_restart(self, sequences):
        numbering = DocumentNumbering(sequences, NumberingConfig())
        numbering.invoice_number(datetime(2026, 12, 31, tzinfo=timezone.utc))
        assert numbering.invoice_number(datetime(2027, 1, 1, tzinfo=timezone.utc)) == "CI-2027-0001"

    def test_receipts_do_not_restart(self, sequences):
        numbering = DocumentNumbering(sequences, NumberingConfig())
        numbering.receipt_number()
        assert numbering.receipt_number() == "PN000002"

    def test_configured_prefixes(self, sequences):
        config = NumberingConfig(quotation_prefix="Q", invoice_prefix="INV", receipt_prefix="R-")
        numbering = DocumentNumbering(sequences, config)
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert numbering.quotation_number(now) == "Q-2026-000001"
        assert numbering.invoice_number(now) == "INV-2026-0001"
        assert numbering.receipt_number() == "R-000001"
