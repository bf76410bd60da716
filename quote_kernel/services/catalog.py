"""
CatalogReader -- snapshots catalog prices and VIN state into line items.

Responsibility:
    Turns a caller's line-item request (catalog id, quantity, VINs and an
    optional negotiated price) into a priced ``LineItem`` at the moment a
    quotation is created or edited.  The price is copied; later catalog
    changes never reach an existing quotation.

Failure modes:
    - CatalogItemNotFoundError for unknown or inactive items.
    - ValidationError when VINs are missing for a serialized item, given
      for a non-serialized one, or belong to another item.
    - UnitUnavailableError when a referenced VIN is not active.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from quote_kernel.domain.pricing import LineItem
from quote_kernel.domain.values import Money
from quote_kernel.exceptions import (
    CatalogItemNotFoundError,
    UnitUnavailableError,
    ValidationError,
)
from quote_kernel.models.inventory import SerializedUnitModel, StockItemModel, UnitStatus


@dataclass(frozen=True)
class LineItemRequest:
    catalog_item_id: str
    quantity: int
    serialized_units: tuple[str, ...] = ()
    unit_price: Money | None = None


class CatalogReader:
    def __init__(self, session: Session):
        self.session = session

    def get_item(self, catalog_item_id: str) -> StockItemModel:
        try:
            item_uuid = UUID(str(catalog_item_id))
        except ValueError as e:
            raise CatalogItemNotFoundError(str(catalog_item_id)) from e
        item = self.session.get(StockItemModel, item_uuid)
        if item is None or item.status != "active":
            raise CatalogItemNotFoundError(str(catalog_item_id))
        return item

    def build_line_item(self, request: LineItemRequest) -> LineItem:
        item = self.get_item(request.catalog_item_id)
        vins = tuple(request.serialized_units)

        if item.is_serialized and not vins:
            raise ValidationError(
                f"item {item.sku} is serialized; serialized_units are required",
                field="serialized_units",
            )
        if vins and not item.is_serialized:
            raise ValidationError(
                f"item {item.sku} is not serialized", field="serialized_units"
            )
        if vins:
            self._check_units(item, vins)

        price = request.unit_price or Money(item.unit_price, item.currency)
        return LineItem(
            catalog_item_id=str(item.id),
            name=item.name,
            unit_price=price,
            quantity=request.quantity,
            serialized_units=vins,
        )

    def _check_units(self, item: StockItemModel, vins: tuple[str, ...]) -> None:
        units = self.session.execute(
            select(SerializedUnitModel).where(SerializedUnitModel.vin.in_(vins))
        ).scalars().all()
        by_vin = {u.vin: u for u in units}
        foreign = [v for v in vins if v not in by_vin or by_vin[v].stock_item_id != item.id]
        if foreign:
            raise ValidationError(
                f"serialized units do not belong to item {item.sku}: {', '.join(foreign)}",
                field="serialized_units",
            )
        unavailable = tuple(v for v in vins if by_vin[v].status != UnitStatus.ACTIVE.value)
        if unavailable:
            raise UnitUnavailableError(str(item.id), unavailable)
