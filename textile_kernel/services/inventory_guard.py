"""
InventoryGuard -- the only writer of InventoryStock.current_quantity.

Responsibility:
    Applies a signed quantity delta to one stock item under a row lock and
    appends exactly one InventoryMovement describing it.  Decides, through
    the configured OverConsumptionPolicy, what happens when a consumption
    would go below zero.

Architecture position:
    Kernel > Services.  Called by the DyeingService and by fixture loading;
    nothing else writes current_quantity.

Invariants enforced:
    - current_quantity >= 0 after every adjustment.
    - One adjustment == one movement, in the same unit of work.  The sum of
      a stock's movement deltas equals its quantity change.
    - The stock row is locked (SELECT ... FOR UPDATE) for the whole
      read-modify-write; concurrent adjustments serialize.

Failure modes:
    - ValidationError: zero delta, unknown movement / reference type,
      negative unit cost.
    - StockNotFoundError: unknown stock item.
    - InsufficientStockError: RejectPolicy and not enough on hand.
"""

from decimal import Decimal
from uuid import UUID

from textile_kernel.domain.clock import Clock
from textile_kernel.domain.dtos import AdjustmentResult
from textile_kernel.domain.money import ZERO, round_money, round_quantity, to_money, to_quantity
from textile_kernel.domain.policies import ClampPolicy, OverConsumptionPolicy
from textile_kernel.exceptions import StockNotFoundError, ValidationError
from textile_kernel.logging_config import get_logger
from textile_kernel.models.inventory import (
    InventoryMovement,
    InventoryStock,
    MovementType,
    ProductType,
    ReferenceType,
)
from textile_kernel.services.base import BaseService

logger = get_logger("services.inventory_guard")


class InventoryGuard(BaseService[InventoryStock]):
    """
    Locked quantity adjustments with a paired movement row.

    Args:
        session: SQLAlchemy session (caller owns the transaction).
        clock: Time source for restock timestamps.
        policy: Over-consumption policy; ClampPolicy when omitted.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        policy: OverConsumptionPolicy | None = None,
    ):
        super().__init__(session, clock)
        self.policy = policy or ClampPolicy()

    def adjust_quantity(
        self,
        stock_id: UUID,
        delta: Decimal | int | str,
        *,
        actor_id: UUID,
        movement_type: MovementType | str,
        reference_type: ReferenceType | str,
        reference_id: str | None = None,
        dyeing_run_id: UUID | None = None,
        unit_cost: Decimal | int | str | None = None,
        notes: str | None = None,
    ) -> AdjustmentResult:
        """
        Apply ``delta`` to a stock item.

        Postconditions:
            - new_quantity >= 0.
            - applied_delta == delta unless the policy clamped it, in which
              case applied_delta == -old quantity and new_quantity == 0.
            - Exactly one InventoryMovement row was added.

        Raises:
            ValidationError, StockNotFoundError, InsufficientStockError.
        """
        actor_id = self._require_actor(actor_id)
        requested = to_quantity(delta, "delta")
        if requested == 0:
            raise ValidationError("delta", "quantity change must not be zero")
        try:
            movement_type = MovementType(movement_type)
        except ValueError:
            raise ValidationError("movement_type", f"unknown movement type {movement_type!r}") from None
        try:
            reference_type = ReferenceType(reference_type)
        except ValueError:
            raise ValidationError("reference_type", f"unknown reference type {reference_type!r}") from None
        cost = to_money(unit_cost, "unit_cost") if unit_cost is not None else None
        if cost is not None and cost < ZERO:
            raise ValidationError("unit_cost", "must not be negative")

        # INVARIANT: locked read-modify-write on the stock row
        stock = self._get_for_update(InventoryStock, stock_id, StockNotFoundError)
        current = round_quantity(stock.current_quantity)

        applied = requested
        if current + requested < 0:
            applied = round_quantity(self.policy.resolve(stock.id, current, requested))
            logger.warning(
                "stock_consumption_clamped",
                extra={
                    "stock_id": str(stock.id),
                    "item_code": stock.item_code,
                    "requested_delta": str(requested),
                    "applied_delta": str(applied),
                    "policy": self.policy.name,
                },
            )

        new_quantity = round_quantity(current + applied)
        stock.current_quantity = new_quantity
        stock.movement_count = (stock.movement_count or 0) + 1
        stock.updated_by_id = actor_id
        if requested > 0:
            stock.last_restocked_at = self.clock.now()

        movement = InventoryMovement(
            stock_id=stock.id,
            sequence=stock.movement_count,
            movement_type=movement_type.value,
            requested_delta=requested,
            quantity_delta=applied,
            resulting_quantity=new_quantity,
            unit_cost=cost,
            total_cost=round_money(abs(applied) * cost) if cost is not None else None,
            reference_type=reference_type.value,
            reference_id=reference_id,
            dyeing_run_id=dyeing_run_id,
            notes=notes,
            created_by_id=actor_id,
        )
        self.session.add(movement)
        self.session.flush()

        logger.info(
            "stock_adjusted",
            extra={
                "stock_id": str(stock.id),
                "item_code": stock.item_code,
                "movement_type": movement_type.value,
                "requested_delta": str(requested),
                "applied_delta": str(applied),
                "new_quantity": str(new_quantity),
                "movement_id": str(movement.id),
            },
        )
        return AdjustmentResult(
            stock_id=stock.id,
            new_quantity=new_quantity,
            applied_delta=applied,
            requested_delta=requested,
            movement_id=movement.id,
        )

    def register_stock(
        self,
        item_code: str,
        description: str,
        *,
        actor_id: UUID,
        product_type: ProductType | str = ProductType.THREAD,
        unit_of_measure: str = "KG",
        thread_type: str | None = None,
        color_name: str | None = None,
        color_code: str | None = None,
        opening_quantity: Decimal | int | str | None = None,
        min_stock_level: Decimal | int | str = 0,
        cost_per_unit: Decimal | int | str = 0,
        sale_price: Decimal | int | str | None = None,
        location: str | None = None,
    ) -> InventoryStock:
        """
        Create a stock item at zero and book any opening quantity through
        adjust_quantity, so the opening balance has its own movement.
        """
        actor_id = self._require_actor(actor_id)
        if not item_code or not item_code.strip():
            raise ValidationError("item_code", "item code is required")
        try:
            product_type = ProductType(product_type)
        except ValueError:
            raise ValidationError("product_type", f"unknown product type {product_type!r}") from None
        opening = to_quantity(opening_quantity or 0, "opening_quantity")
        if opening < 0:
            raise ValidationError("opening_quantity", "must not be negative")

        stock = InventoryStock(
            item_code=item_code.strip(),
            description=description,
            product_type=product_type.value,
            unit_of_measure=unit_of_measure,
            thread_type=thread_type,
            color_name=color_name,
            color_code=color_code,
            current_quantity=Decimal("0.000"),
            movement_count=0,
            min_stock_level=to_quantity(min_stock_level, "min_stock_level"),
            cost_per_unit=to_money(cost_per_unit, "cost_per_unit"),
            sale_price=to_money(sale_price, "sale_price") if sale_price is not None else None,
            location=location,
            created_by_id=actor_id,
        )
        self.session.add(stock)
        self.session.flush()
        logger.info(
            "stock_registered",
            extra={"stock_id": str(stock.id), "item_code": stock.item_code},
        )

        if opening > 0:
            self.adjust_quantity(
                stock.id,
                opening,
                actor_id=actor_id,
                movement_type=MovementType.ADJUSTMENT,
                reference_type=ReferenceType.MANUAL,
                notes="Opening balance",
            )
        return stock
