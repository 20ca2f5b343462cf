"""
Module: textile_kernel.models.purchase
Responsibility: ORM persistence for raw thread purchase lots.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - quantity > 0 and unit_price >= 0 (CHECK constraints).
    - color_status moves RAW -> COLORED once, when a dyeing run over the lot
      is completed and posted.  It never moves back.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from textile_kernel.db.base import QUANTITY_COLUMN, TrackedBase, UUIDString


class ColorStatus(str, Enum):
    RAW = "RAW"
    COLORED = "COLORED"


class ThreadPurchase(TrackedBase):
    """A lot of thread bought from a vendor."""

    __tablename__ = "thread_purchases"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_purchase_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_purchase_price_non_negative"),
        Index("idx_purchase_vendor", "vendor_id"),
        Index("idx_purchase_color_status", "color_status"),
    )

    vendor_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("parties.id"),
        nullable=False,
    )

    thread_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    unit_of_measure: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(
        QUANTITY_COLUMN,
        nullable=False,
    )

    unit_price: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    received: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    color_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ColorStatus.RAW.value,
    )

    # Raw stock item the lot was received into
    stock_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_stock.id"),
        nullable=True,
    )

    @property
    def is_raw(self) -> bool:
        return self.color_status == ColorStatus.RAW.value

    def __repr__(self) -> str:
        return f"<ThreadPurchase {self.thread_type} {self.quantity} {self.color_status}>"
