"""
Module: textile_kernel.models.inventory
Responsibility: ORM persistence for stock items (raw and dyed thread,
    fabric) and the append-only movement log that explains every change to
    their quantity.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - current_quantity >= 0 (CHECK constraint).  Only the Inventory Guard
      writes it, always inside a locked read-modify-write.
    - Every change to current_quantity is paired with exactly one
      InventoryMovement in the same unit of work.
    - Movements of one stock item are numbered 1, 2, 3 ... by sequence,
      issued under the stock row lock; (stock_id, sequence) is unique.
    - InventoryMovement rows are never updated or deleted (ORM listeners in
      db/immutability.py).

Failure modes:
    - IntegrityError on a duplicate item_code or a negative quantity.
    - ImmutabilityViolationError on UPDATE / DELETE of a movement.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from textile_kernel.db.base import QUANTITY_COLUMN, TrackedBase, UUIDString


class ProductType(str, Enum):
    THREAD = "THREAD"
    FABRIC = "FABRIC"


class MovementType(str, Enum):
    PURCHASE = "PURCHASE"
    PRODUCTION = "PRODUCTION"
    SALES = "SALES"
    ADJUSTMENT = "ADJUSTMENT"
    TRANSFER = "TRANSFER"


class ReferenceType(str, Enum):
    """What kind of document caused a movement."""

    PURCHASE = "PURCHASE"
    PRODUCTION = "PRODUCTION"
    SALE = "SALE"
    DYEING = "DYEING"
    MANUAL = "MANUAL"


class InventoryStock(TrackedBase):
    """
    A stock-keeping item and its on-hand quantity.

    Dyed thread items are keyed by (thread_type, color_name, color_code);
    raw thread has no color.
    """

    __tablename__ = "inventory_stock"

    __table_args__ = (
        UniqueConstraint("item_code", name="uq_stock_item_code"),
        CheckConstraint("current_quantity >= 0", name="ck_stock_quantity_non_negative"),
        Index("idx_stock_product_type", "product_type"),
        Index("idx_stock_thread_color", "thread_type", "color_name", "color_code"),
    )

    item_code: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    product_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    unit_of_measure: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    thread_type: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    color_name: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    color_code: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )

    current_quantity: Mapped[Decimal] = mapped_column(
        QUANTITY_COLUMN,
        nullable=False,
        default=Decimal("0.000"),
    )

    min_stock_level: Mapped[Decimal] = mapped_column(
        QUANTITY_COLUMN,
        nullable=False,
        default=Decimal("0.000"),
    )

    cost_per_unit: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0.00"),
    )

    sale_price: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    last_restocked_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    location: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    # Last movement sequence number issued for this item
    movement_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    @property
    def is_below_minimum(self) -> bool:
        return self.current_quantity < self.min_stock_level

    def __repr__(self) -> str:
        return f"<InventoryStock {self.item_code}: {self.current_quantity} {self.unit_of_measure}>"


class InventoryMovement(TrackedBase):
    """
    Append-only record of one quantity change.

    quantity_delta is the delta actually applied; requested_delta is what
    the caller asked for.  They differ only when the clamp policy cut a
    consumption short.
    """

    __tablename__ = "inventory_movements"

    __table_args__ = (
        UniqueConstraint("stock_id", "sequence", name="uq_movement_stock_sequence"),
        Index("idx_movement_stock", "stock_id"),
        Index("idx_movement_reference", "reference_type", "reference_id"),
        Index("idx_movement_dyeing_run", "dyeing_run_id"),
    )

    stock_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_stock.id"),
        nullable=False,
    )

    # 1, 2, 3 ... per stock item, in the order the Guard applied them
    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    movement_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    requested_delta: Mapped[Decimal] = mapped_column(
        QUANTITY_COLUMN,
        nullable=False,
    )

    quantity_delta: Mapped[Decimal] = mapped_column(
        QUANTITY_COLUMN,
        nullable=False,
    )

    resulting_quantity: Mapped[Decimal] = mapped_column(
        QUANTITY_COLUMN,
        nullable=False,
    )

    unit_cost: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    total_cost: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    reference_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    reference_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    dyeing_run_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("dyeing_runs.id"),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<InventoryMovement {self.movement_type} {self.quantity_delta} on {self.stock_id}>"
