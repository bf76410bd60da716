"""
Module: quote_kernel.models.reservation
Responsibility: The inventory coordinator's own record of what it committed
    for a quotation, so that release reverses exactly that and nothing else.
Architecture position: Kernel > Models.  Written and read only by
    InventoryReservationCoordinator.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quote_kernel.db.base import Base, UTCDateTime, UUIDString


class ReservationStatus(str, Enum):
    ACTIVE = "active"
    RELEASED = "released"
    CONSUMED = "consumed"


class StockReservationModel(Base):
    """A reservation held for one quotation."""

    __tablename__ = "stock_reservations"

    __table_args__ = (
        Index("idx_reservation_quotation_status", "quotation_id", "status"),
    )

    quotation_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=ReservationStatus.ACTIVE.value,
    )
    reserved_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    lines: Mapped[list["StockReservationLineModel"]] = relationship(
        "StockReservationLineModel",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<StockReservation quotation={self.quotation_id} status={self.status}>"


class StockReservationLineModel(Base):
    """One committed quantity (non-serialized) or one held VIN (serialized)."""

    __tablename__ = "stock_reservation_lines"

    reservation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stock_reservations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stock_item_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    vin: Mapped[str | None] = mapped_column(String(64), nullable=True)
