"""Sequence counter table backing SequenceService."""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from quote_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Each row represents a named sequence with its current value.

    Incremented only through an atomic ``current_value = current_value + 1``
    UPDATE, never by read-then-write.
    """

    __tablename__ = "sequence_counters"

    # Sequence name (e.g., "quotation:2026", "invoice:2026", "receipt")
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
