"""
Module: textile_kernel.models.settlement
Responsibility: ORM persistence for settlement transactions (one payment or
    receipt against one obligation) and the cheque detail attached to
    cheque-mode settlements.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - amount > 0 and applied_amount > 0 (CHECK constraints).
    - Financial fields of a SettlementTransaction (obligation_id, amount,
      applied_amount, payment_mode, transaction_date) are immutable, and
      transactions are never deleted (ORM listeners in db/immutability.py).
    - A ChequeDetail exists iff payment_mode == CHEQUE; at most one per
      transaction (uq_cheque_transaction).
    - Only the cheque status, clearance_date, remarks and replaced_by_id
      change after insert, through the Cheque Lifecycle Manager.

Failure modes:
    - IntegrityError on a non-positive amount or a second cheque row.
    - ImmutabilityViolationError on UPDATE of financial fields or DELETE.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from textile_kernel.db.base import TrackedBase, UUIDString
from textile_kernel.domain.values import ChequeStatus, PaymentMode

if TYPE_CHECKING:
    from textile_kernel.models.obligation import Obligation


class SettlementTransaction(TrackedBase):
    """
    One settlement against exactly one obligation.

    Guarantees:
        - Immutable once flushed except through the cheque sub-record.
    """

    __tablename__ = "settlement_transactions"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_settlement_amount_positive"),
        CheckConstraint("applied_amount > 0", name="ck_settlement_applied_positive"),
        UniqueConstraint("obligation_id", "sequence", name="uq_settlement_obligation_sequence"),
        Index("idx_settlement_obligation", "obligation_id"),
        Index("idx_settlement_date", "transaction_date"),
    )

    obligation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("obligations.id"),
        nullable=False,
    )

    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    # What the settlement added to obligation.paid_amount; below amount only when
    # the one-minor-unit slack was capped at total
    applied_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    payment_mode: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    transaction_date: Mapped[datetime] = mapped_column(
        nullable=False,
    )

    reference_number: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    obligation: Mapped["Obligation"] = relationship(back_populates="transactions")

    cheque: Mapped["ChequeDetail | None"] = relationship(
        back_populates="transaction",
        foreign_keys="ChequeDetail.transaction_id",
        uselist=False,
    )

    @property
    def is_cheque(self) -> bool:
        return self.payment_mode == PaymentMode.CHEQUE.value

    def __repr__(self) -> str:
        return f"<SettlementTransaction {self.id}: {self.amount} {self.payment_mode}>"


class ChequeDetail(TrackedBase):
    """
    Cheque sub-record of a CHEQUE settlement.

    Contract:
        status follows the cheque workflow: PENDING -> CLEARED | BOUNCED |
        REPLACED.  All three targets are terminal.
    """

    __tablename__ = "cheque_details"

    __table_args__ = (
        UniqueConstraint("transaction_id", name="uq_cheque_transaction"),
        Index("idx_cheque_status", "status"),
        Index("idx_cheque_number", "cheque_number"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("settlement_transactions.id"),
        nullable=False,
    )

    cheque_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    bank: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    branch: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ChequeStatus.PENDING.value,
    )

    issue_date: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    clearance_date: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    remarks: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    # Set when the cheque is REPLACED: the settlement carrying the new cheque
    replaced_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("settlement_transactions.id"),
        nullable=True,
    )

    transaction: Mapped["SettlementTransaction"] = relationship(
        back_populates="cheque",
        foreign_keys=[transaction_id],
    )

    def __repr__(self) -> str:
        return f"<ChequeDetail {self.cheque_number} ({self.bank}) {self.status}>"
