"""
Module: textile_kernel.models.dyeing
Responsibility: ORM persistence for dyeing runs -- raw thread in, colored
    thread out -- with their result status, inventory posting status and
    cost breakdown.
Architecture position: Kernel > Models.  May import from db/base.py,
    domain/money.py and domain/values.py only.

Invariants enforced:
    - input_quantity > 0; 0 <= output_quantity <= input_quantity (CHECK).
    - result_status follows DYEING_WORKFLOW (domain/workflow.py).
    - inventory_status goes PENDING -> ADDED at most once: the output is
      posted to stock exactly once.
    - material_consumed goes False -> True at most once: the raw input is
      consumed exactly once.

Failure modes:
    - IntegrityError on quantities outside their bounds.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from textile_kernel.db.base import QUANTITY_COLUMN, TrackedBase, UUIDString
from textile_kernel.domain.money import ZERO, round_money, round_quantity
from textile_kernel.domain.values import DyeingResultStatus, InventoryPostingStatus


class DyeingRun(TrackedBase):
    """
    One dyeing production run.

    Guarantees:
        - total_cost == labor_cost + dye_material_cost whenever either is set.
    """

    __tablename__ = "dyeing_runs"

    __table_args__ = (
        CheckConstraint("input_quantity > 0", name="ck_dyeing_input_positive"),
        CheckConstraint(
            "output_quantity IS NULL OR (output_quantity >= 0 AND output_quantity <= input_quantity)",
            name="ck_dyeing_output_within_input",
        ),
        Index("idx_dyeing_result_status", "result_status"),
        Index("idx_dyeing_raw_stock", "raw_stock_id"),
    )

    raw_stock_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_stock.id"),
        nullable=False,
    )

    thread_purchase_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("thread_purchases.id"),
        nullable=True,
    )

    input_quantity: Mapped[Decimal] = mapped_column(
        QUANTITY_COLUMN,
        nullable=False,
    )

    output_quantity: Mapped[Decimal | None] = mapped_column(
        QUANTITY_COLUMN,
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

    labor_cost: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    dye_material_cost: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    total_cost: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    dye_date: Mapped[datetime] = mapped_column(
        nullable=False,
    )

    completion_date: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    remarks: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    result_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DyeingResultStatus.PENDING.value,
    )

    inventory_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=InventoryPostingStatus.PENDING.value,
    )

    material_consumed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # Finished-goods stock item the output was posted to
    output_stock_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_stock.id"),
        nullable=True,
    )

    reversed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    @property
    def is_posted(self) -> bool:
        return self.inventory_status == InventoryPostingStatus.ADDED.value

    @property
    def wastage(self) -> Decimal | None:
        if self.output_quantity is None:
            return None
        return round_quantity(self.input_quantity - self.output_quantity)

    @property
    def wastage_percentage(self) -> Decimal | None:
        wastage = self.wastage
        if wastage is None or not self.input_quantity:
            return None
        return round_money(wastage * 100 / self.input_quantity)

    @property
    def unit_cost(self) -> Decimal | None:
        """Cost per unit of output; None until there is output and a cost."""
        if self.total_cost is None or not self.output_quantity:
            return None
        return round_money(self.total_cost / self.output_quantity)

    @staticmethod
    def compute_total_cost(
        labor_cost: Decimal | None, dye_material_cost: Decimal | None
    ) -> Decimal | None:
        if labor_cost is None and dye_material_cost is None:
            return None
        return round_money((labor_cost or ZERO) + (dye_material_cost or ZERO))

    def __repr__(self) -> str:
        return (
            f"<DyeingRun {self.id}: {self.input_quantity} -> {self.output_quantity} "
            f"{self.result_status}/{self.inventory_status}>"
        )
