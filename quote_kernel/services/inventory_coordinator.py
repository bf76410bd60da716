"""
InventoryReservationCoordinator -- all-or-nothing stock and VIN commitment.

Responsibility:
    Reserves stock for a quotation on acceptance, consumes the reservation
    on conversion and releases it when an accepted quotation expires.

Architecture position:
    Kernel > Services -- imperative shell.  Called only by the quotation
    lifecycle service during accept, convert and expire.

Invariants enforced:
    - Stock is decremented by one conditional statement:
      ``UPDATE stock_items SET available_quantity = available_quantity - :n
      WHERE id = :id AND available_quantity >= :n``.  Capacity can never be
      exceeded, whatever the interleaving.
    - VINs move active -> hold with ``... WHERE vin IN (...) AND
      status = 'active'``; a short rowcount means some unit was taken.
    - All work for one quotation runs in a SAVEPOINT.  Any failure rolls
      back every unit and quantity already touched; nothing partial remains.
    - Release and consume read back the reservation lines written here and
      reverse (or finalize) exactly those.
    - Closing a reservation is itself conditional (``status = 'active'``),
      so two concurrent releases cannot both restore stock.

Failure modes:
    - InsufficientStockError / UnitUnavailableError, returned inside a
      failed ReservationResult.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from quote_kernel.domain.clock import Clock
from quote_kernel.domain.pricing import LineItem
from quote_kernel.exceptions import (
    CatalogItemNotFoundError,
    InsufficientStockError,
    InventoryError,
    UnitUnavailableError,
)
from quote_kernel.logging_config import get_logger
from quote_kernel.models.inventory import SerializedUnitModel, StockItemModel, UnitStatus
from quote_kernel.models.reservation import (
    ReservationStatus,
    StockReservationLineModel,
    StockReservationModel,
)
from quote_kernel.services.base import BaseService

logger = get_logger("services.inventory")


@dataclass(frozen=True)
class ReservedLine:
    stock_item_id: UUID
    quantity: int
    vin: str | None = None


@dataclass(frozen=True)
class ReservationHandle:
    reservation_id: UUID
    quotation_id: UUID
    status: ReservationStatus
    lines: tuple[ReservedLine, ...]

    def quantity_for(self, stock_item_id: UUID) -> int:
        return sum(line.quantity for line in self.lines if line.stock_item_id == stock_item_id)

    @property
    def vins(self) -> tuple[str, ...]:
        return tuple(line.vin for line in self.lines if line.vin is not None)

    @classmethod
    def from_model(cls, model: StockReservationModel) -> ReservationHandle:
        return cls(
            reservation_id=model.id,
            quotation_id=model.quotation_id,
            status=ReservationStatus(model.status),
            lines=tuple(
                ReservedLine(line.stock_item_id, line.quantity, line.vin)
                for line in model.lines
            ),
        )


@dataclass(frozen=True)
class ReservationResult:
    """Tagged outcome of ``reserve``: a handle, or the inventory error."""

    success: bool
    handle: ReservationHandle | None = None
    error: InventoryError | None = None

    @classmethod
    def ok(cls, handle: ReservationHandle) -> ReservationResult:
        return cls(success=True, handle=handle)

    @classmethod
    def failed(cls, error: InventoryError) -> ReservationResult:
        return cls(success=False, error=error)

    def unwrap(self) -> ReservationHandle:
        if not self.success:
            raise self.error
        return self.handle


@dataclass
class _ItemPlan:
    stock_item_id: UUID
    quantity: int = 0
    vins: tuple[str, ...] = ()


def _plan(line_items: Sequence[LineItem]) -> list[_ItemPlan]:
    plans: dict[UUID, _ItemPlan] = {}
    for item in line_items:
        try:
            item_id = UUID(str(item.catalog_item_id))
        except ValueError as e:
            raise CatalogItemNotFoundError(item.catalog_item_id) from e
        plan = plans.setdefault(item_id, _ItemPlan(item_id))
        plan.quantity += item.quantity
        plan.vins = plan.vins + item.serialized_units
    # Fixed lock order across concurrent reservations.
    return [plans[k] for k in sorted(plans, key=str)]


class InventoryReservationCoordinator(BaseService):
    """Atomic check-and-commit of stock levels and serialized units."""

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    # -- reserve --------------------------------------------------------------

    def reserve(self, quotation_id: UUID, line_items: Sequence[LineItem]) -> ReservationResult:
        plans = _plan(line_items)
        savepoint = self.session.begin_nested()
        try:
            reserved: list[ReservedLine] = []
            for plan in plans:
                if plan.vins:
                    self._hold_units(quotation_id, plan)
                    reserved.extend(ReservedLine(plan.stock_item_id, 1, vin) for vin in plan.vins)
                    non_serial = plan.quantity - len(plan.vins)
                    if non_serial:
                        reserved.append(ReservedLine(plan.stock_item_id, non_serial))
                else:
                    reserved.append(ReservedLine(plan.stock_item_id, plan.quantity))
                self._decrement(plan.stock_item_id, plan.quantity)

            reservation = StockReservationModel(
                quotation_id=quotation_id,
                status=ReservationStatus.ACTIVE.value,
                reserved_at=self._clock.now(),
                lines=[
                    StockReservationLineModel(
                        stock_item_id=line.stock_item_id,
                        quantity=line.quantity,
                        vin=line.vin,
                    )
                    for line in reserved
                ],
            )
            self.session.add(reservation)
            self.session.flush()
            savepoint.commit()
        except InventoryError as e:
            savepoint.rollback()
            logger.warning(
                "stock_reservation_failed",
                extra={"quotation_id": str(quotation_id), "error_code": e.code},
            )
            return ReservationResult.failed(e)
        except Exception:
            savepoint.rollback()
            raise
        finally:
            self._expire_inventory()

        handle = ReservationHandle.from_model(reservation)
        logger.info(
            "stock_reserved",
            extra={
                "quotation_id": str(quotation_id),
                "items": len(plans),
                "vins": len(handle.vins),
            },
        )
        return ReservationResult.ok(handle)

    def _hold_units(self, quotation_id: UUID, plan: _ItemPlan) -> None:
        result = self.session.execute(
            update(SerializedUnitModel)
            .where(
                SerializedUnitModel.stock_item_id == plan.stock_item_id,
                SerializedUnitModel.vin.in_(plan.vins),
                SerializedUnitModel.status == UnitStatus.ACTIVE.value,
            )
            .values(
                status=UnitStatus.HOLD.value,
                reserved_for_quotation_id=quotation_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(plan.vins):
            held = set(
                self.session.execute(
                    select(SerializedUnitModel.vin).where(
                        SerializedUnitModel.vin.in_(plan.vins),
                        SerializedUnitModel.reserved_for_quotation_id == quotation_id,
                        SerializedUnitModel.status == UnitStatus.HOLD.value,
                    )
                ).scalars()
            )
            missing = tuple(v for v in plan.vins if v not in held)
            raise UnitUnavailableError(str(plan.stock_item_id), missing)

    def _decrement(self, stock_item_id: UUID, quantity: int) -> None:
        result = self.session.execute(
            update(StockItemModel)
            .where(
                StockItemModel.id == stock_item_id,
                StockItemModel.available_quantity >= quantity,
            )
            .values(available_quantity=StockItemModel.available_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            available = self.session.execute(
                select(StockItemModel.available_quantity).where(StockItemModel.id == stock_item_id)
            ).scalar_one_or_none()
            if available is None:
                raise CatalogItemNotFoundError(str(stock_item_id))
            raise InsufficientStockError(str(stock_item_id), quantity, available)

    # -- read back ------------------------------------------------------------

    def _active_model(self, quotation_id: UUID) -> StockReservationModel | None:
        return self.session.execute(
            select(StockReservationModel)
            .where(
                StockReservationModel.quotation_id == quotation_id,
                StockReservationModel.status == ReservationStatus.ACTIVE.value,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def find_active(self, quotation_id: UUID) -> ReservationHandle | None:
        model = self._active_model(quotation_id)
        return ReservationHandle.from_model(model) if model is not None else None

    def _close(self, model: StockReservationModel, status: ReservationStatus) -> bool:
        result = self.session.execute(
            update(StockReservationModel)
            .where(
                StockReservationModel.id == model.id,
                StockReservationModel.status == ReservationStatus.ACTIVE.value,
            )
            .values(status=status.value, closed_at=self._clock.now())
            .execution_options(synchronize_session=False)
        )
        self.session.expire(model)
        return result.rowcount == 1

    # -- release / consume ----------------------------------------------------

    def release(self, quotation_id: UUID) -> ReservationHandle | None:
        """Return exactly what was reserved for ``quotation_id`` to stock."""
        model = self._active_model(quotation_id)
        if model is None:
            return None
        handle = ReservationHandle.from_model(model)
        if not self._close(model, ReservationStatus.RELEASED):
            return None

        for line in handle.lines:
            if line.vin is not None:
                self.session.execute(
                    update(SerializedUnitModel)
                    .where(
                        SerializedUnitModel.vin == line.vin,
                        SerializedUnitModel.reserved_for_quotation_id == quotation_id,
                        SerializedUnitModel.status == UnitStatus.HOLD.value,
                    )
                    .values(status=UnitStatus.ACTIVE.value, reserved_for_quotation_id=None)
                    .execution_options(synchronize_session=False)
                )
            self.session.execute(
                update(StockItemModel)
                .where(StockItemModel.id == line.stock_item_id)
                .values(available_quantity=StockItemModel.available_quantity + line.quantity)
                .execution_options(synchronize_session=False)
            )
        self._expire_inventory()
        logger.info(
            "stock_released",
            extra={"quotation_id": str(quotation_id), "lines": len(handle.lines)},
        )
        return handle

    def consume(self, quotation_id: UUID) -> ReservationHandle | None:
        """Finalize the active reservation: held VINs become sold."""
        model = self._active_model(quotation_id)
        if model is None:
            return None
        handle = ReservationHandle.from_model(model)
        if not self._close(model, ReservationStatus.CONSUMED):
            return None

        if handle.vins:
            self.session.execute(
                update(SerializedUnitModel)
                .where(
                    SerializedUnitModel.vin.in_(handle.vins),
                    SerializedUnitModel.reserved_for_quotation_id == quotation_id,
                    SerializedUnitModel.status == UnitStatus.HOLD.value,
                )
                .values(status=UnitStatus.SOLD.value)
                .execution_options(synchronize_session=False)
            )
        self._expire_inventory()
        logger.info(
            "stock_consumed",
            extra={"quotation_id": str(quotation_id), "vins": len(handle.vins)},
        )
        return ReservationHandle(
            reservation_id=handle.reservation_id,
            quotation_id=handle.quotation_id,
            status=ReservationStatus.CONSUMED,
            lines=handle.lines,
        )

    def _expire_inventory(self) -> None:
        # Bulk UPDATEs bypass the identity map; drop cached stock rows only.
        for obj in list(self.session.identity_map.values()):
            if isinstance(obj, (StockItemModel, SerializedUnitModel, StockReservationModel)):
                self.session.expire(obj)
