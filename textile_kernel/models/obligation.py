"""
Module: textile_kernel.models.obligation
Responsibility: ORM persistence for obligations -- payables, receivables,
    purchase / sale bills and khata entries -- each carrying a total, the
    amount settled so far and a settlement status.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - 0 <= paid_amount <= total_amount (CHECK constraints).
    - total_amount is immutable after creation (ORM listener in
      db/immutability.py).
    - status is persisted as ObligationStatus.value.  Outside CANCELLED it is
      always money.derive_status(total_amount, paid_amount); only the
      Transaction Recorder and the Cheque Lifecycle Manager write it.

Failure modes:
    - IntegrityError on a negative amount or an over-paid row.
    - ImmutabilityViolationError on UPDATE of total_amount.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from textile_kernel.db.base import TrackedBase, UUIDString
from textile_kernel.domain.values import ObligationStatus

if TYPE_CHECKING:
    from textile_kernel.models.party import Khata, Party
    from textile_kernel.models.settlement import SettlementTransaction


class ObligationKind(str, Enum):
    PAYABLE = "PAYABLE"
    RECEIVABLE = "RECEIVABLE"
    BILL = "BILL"
    KHATA = "KHATA"


class BillType(str, Enum):
    PURCHASE = "PURCHASE"
    SALE = "SALE"


class Direction(str, Enum):
    """Which way money flows when the obligation is settled."""

    OUTFLOW = "OUTFLOW"
    INFLOW = "INFLOW"


class Obligation(TrackedBase):
    """
    A payable, receivable, bill or khata entry with a settlement position.

    Contract:
        total_amount is fixed at creation.  paid_amount only moves through
        settlements (up) and cheque reversals (down), always together with
        status in the same unit of work.
    """

    __tablename__ = "obligations"

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_obligation_total_non_negative"),
        CheckConstraint("paid_amount >= 0", name="ck_obligation_paid_non_negative"),
        CheckConstraint("paid_amount <= total_amount", name="ck_obligation_not_overpaid"),
        Index("idx_obligation_status", "status"),
        Index("idx_obligation_counterparty", "counterparty_id"),
        Index("idx_obligation_tenant", "tenant_id"),
        Index("idx_obligation_due_date", "due_date"),
    )

    kind: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    # Only meaningful for BILL
    bill_type: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )

    reference: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    total_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    paid_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0.00"),
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ObligationStatus.PENDING.value,
    )

    due_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    counterparty_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("parties.id"),
        nullable=True,
    )

    tenant_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("khatas.id"),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    # Last settlement sequence number issued for this obligation
    settlement_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    counterparty: Mapped["Party | None"] = relationship()
    tenant: Mapped["Khata | None"] = relationship()

    transactions: Mapped[list["SettlementTransaction"]] = relationship(
        back_populates="obligation",
        order_by="SettlementTransaction.created_at",
    )

    @property
    def direction(self) -> Direction:
        if self.kind == ObligationKind.RECEIVABLE.value:
            return Direction.INFLOW
        if self.kind == ObligationKind.BILL.value and self.bill_type == BillType.SALE.value:
            return Direction.INFLOW
        return Direction.OUTFLOW

    @property
    def is_cancelled(self) -> bool:
        return self.status == ObligationStatus.CANCELLED.value

    def __repr__(self) -> str:
        return (
            f"<Obligation {self.kind} {self.reference or self.id}: "
            f"{self.paid_amount}/{self.total_amount} {self.status}>"
        )
