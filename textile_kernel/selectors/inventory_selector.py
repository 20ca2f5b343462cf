"""
Inventory query selector.

Read-only views over stock items and their movement log.  movement_sum()
is the reconciliation check: for every stock item it must equal the item's
quantity change since it was registered at zero.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from textile_kernel.domain.money import round_quantity
from textile_kernel.exceptions import StockNotFoundError
from textile_kernel.models.inventory import InventoryMovement, InventoryStock
from textile_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class StockDTO:
    id: UUID
    item_code: str
    description: str
    product_type: str
    unit_of_measure: str
    thread_type: str | None
    color_name: str | None
    current_quantity: Decimal
    min_stock_level: Decimal
    last_restocked_at: datetime | None

    @property
    def is_below_minimum(self) -> bool:
        return self.current_quantity < self.min_stock_level


@dataclass(frozen=True)
class MovementDTO:
    id: UUID
    stock_id: UUID
    movement_type: str
    requested_delta: Decimal
    quantity_delta: Decimal
    resulting_quantity: Decimal
    reference_type: str
    reference_id: str | None
    sequence: int
    dyeing_run_id: UUID | None
    created_at: datetime


class InventorySelector(BaseSelector[InventoryStock]):
    """Stock and movement queries."""

    def _to_stock_dto(self, stock: InventoryStock) -> StockDTO:
        return StockDTO(
            id=stock.id,
            item_code=stock.item_code,
            description=stock.description,
            product_type=stock.product_type,
            unit_of_measure=stock.unit_of_measure,
            thread_type=stock.thread_type,
            color_name=stock.color_name,
            current_quantity=stock.current_quantity,
            min_stock_level=stock.min_stock_level,
            last_restocked_at=stock.last_restocked_at,
        )

    def get_stock(self, stock_id: UUID) -> StockDTO:
        """
        Raises:
            StockNotFoundError: Unknown stock item.
        """
        stock = self.session.execute(
            select(InventoryStock)
            .where(InventoryStock.id == stock_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if stock is None:
            raise StockNotFoundError(str(stock_id))
        return self._to_stock_dto(stock)

    def find_by_item_code(self, item_code: str) -> StockDTO | None:
        stock = self.session.execute(
            select(InventoryStock).where(InventoryStock.item_code == item_code)
        ).scalar_one_or_none()
        return self._to_stock_dto(stock) if stock is not None else None

    def low_stock(self) -> list[StockDTO]:
        """Items whose quantity is below their minimum stock level."""
        stocks = self.session.execute(
            select(InventoryStock)
            .where(InventoryStock.current_quantity < InventoryStock.min_stock_level)
            .order_by(InventoryStock.item_code)
        ).scalars()
        return [self._to_stock_dto(s) for s in stocks]

    def movement_history(
        self,
        stock_id: UUID | None = None,
        dyeing_run_id: UUID | None = None,
    ) -> list[MovementDTO]:
        """Movements for a stock item and/or a dyeing run, oldest first."""
        stmt = select(InventoryMovement)
        if stock_id is not None:
            stmt = stmt.where(InventoryMovement.stock_id == stock_id)
        if dyeing_run_id is not None:
            stmt = stmt.where(InventoryMovement.dyeing_run_id == dyeing_run_id)
        stmt = stmt.order_by(InventoryMovement.created_at, InventoryMovement.sequence)
        return [
            MovementDTO(
                id=m.id,
                stock_id=m.stock_id,
                sequence=m.sequence,
                movement_type=m.movement_type,
                requested_delta=m.requested_delta,
                quantity_delta=m.quantity_delta,
                resulting_quantity=m.resulting_quantity,
                reference_type=m.reference_type,
                reference_id=m.reference_id,
                dyeing_run_id=m.dyeing_run_id,
                created_at=m.created_at,
            )
            for m in self.session.execute(stmt).scalars()
        ]

    def movement_sum(self, stock_id: UUID) -> Decimal:
        """Sum of applied deltas for one stock item."""
        total = self.session.execute(
            select(func.coalesce(func.sum(InventoryMovement.quantity_delta), 0)).where(
                InventoryMovement.stock_id == stock_id
            )
        ).scalar_one()
        return round_quantity(Decimal(str(total)))
