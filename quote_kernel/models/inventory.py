"""
Module: quote_kernel.models.inventory
Responsibility: Catalog and stock read model -- stock items with an
    available quantity and VIN-tracked serialized units.
Architecture position: Kernel > Models.  Read by CatalogReader at quotation
    creation; mutated only by InventoryReservationCoordinator through
    conditional UPDATE statements.

Invariants enforced:
    - available_quantity never goes below zero (CHECK constraint plus the
      ``available_quantity >= :n`` guard on every decrement).
    - A VIN is unique across all stock items.
    - Serialized unit status is one of active / hold / sold.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from quote_kernel.db.base import Base, TrackedBase, UUIDString


class UnitStatus(str, Enum):
    ACTIVE = "active"
    HOLD = "hold"
    SOLD = "sold"


class StockItemModel(TrackedBase):
    """A catalog entry with its current sale price and stock level."""

    __tablename__ = "stock_items"

    __table_args__ = (
        CheckConstraint("available_quantity >= 0", name="ck_stock_available_nonneg"),
        Index("idx_stock_item_status", "status"),
    )

    sku: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    available_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_serialized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")

    def __repr__(self) -> str:
        return f"<StockItem {self.sku} available={self.available_quantity}>"


class SerializedUnitModel(Base):
    """One physical, individually tracked unit (e.g. a vehicle by VIN)."""

    __tablename__ = "serialized_units"

    __table_args__ = (
        Index("idx_serialized_unit_item_status", "stock_item_id", "status"),
        Index("idx_serialized_unit_quotation", "reserved_for_quotation_id"),
    )

    stock_item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stock_items.id"),
        nullable=False,
    )
    vin: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=UnitStatus.ACTIVE.value,
    )
    reserved_for_quotation_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<SerializedUnit {self.vin} status={self.status}>"
