"""
Obligation query selector.

Read-only balance views over obligations and their settlement history.
Remaining amounts always come from money.remaining(), never from a local
subtraction.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from textile_kernel.domain.dtos import ObligationBalance
from textile_kernel.domain.money import ZERO, remaining, round_money
from textile_kernel.domain.values import ChequeStatus, ObligationStatus
from textile_kernel.exceptions import ObligationNotFoundError
from textile_kernel.models.obligation import Obligation
from textile_kernel.models.settlement import ChequeDetail, SettlementTransaction
from textile_kernel.selectors.base import BaseSelector

_OPEN_STATUSES = (ObligationStatus.PENDING.value, ObligationStatus.PARTIAL.value)


@dataclass(frozen=True)
class SettlementDTO:
    """One settlement with its cheque state, if any."""

    id: UUID
    obligation_id: UUID
    sequence: int
    amount: Decimal
    applied_amount: Decimal
    payment_mode: str
    transaction_date: datetime
    reference_number: str | None
    cheque_number: str | None
    cheque_status: str | None
    replaced_by_id: UUID | None

    @property
    def is_bounced(self) -> bool:
        return self.cheque_status == ChequeStatus.BOUNCED.value


class ObligationSelector(BaseSelector[Obligation]):
    """Balance and settlement history queries."""

    def _to_balance(self, obligation: Obligation, transaction_count: int) -> ObligationBalance:
        return ObligationBalance(
            obligation_id=obligation.id,
            total_amount=obligation.total_amount,
            paid_amount=obligation.paid_amount,
            remaining_amount=remaining(obligation.total_amount, obligation.paid_amount),
            status=obligation.status,
            transaction_count=transaction_count,
        )

    def _transaction_counts(self, obligation_ids: list[UUID]) -> dict[UUID, int]:
        if not obligation_ids:
            return {}
        rows = self.session.execute(
            select(SettlementTransaction.obligation_id, func.count(SettlementTransaction.id))
            .where(SettlementTransaction.obligation_id.in_(obligation_ids))
            .group_by(SettlementTransaction.obligation_id)
        ).all()
        return {obligation_id: count for obligation_id, count in rows}

    def get_balance(self, obligation_id: UUID) -> ObligationBalance:
        """
        Current settlement position of one obligation.

        Raises:
            ObligationNotFoundError: Unknown obligation.
        """
        obligation = self.session.execute(
            select(Obligation)
            .where(Obligation.id == obligation_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if obligation is None:
            raise ObligationNotFoundError(str(obligation_id))
        counts = self._transaction_counts([obligation.id])
        return self._to_balance(obligation, counts.get(obligation.id, 0))

    def list_open(
        self,
        tenant_id: UUID | None = None,
        counterparty_id: UUID | None = None,
    ) -> list[ObligationBalance]:
        """PENDING and PARTIAL obligations, oldest due date first."""
        stmt = select(Obligation).where(Obligation.status.in_(_OPEN_STATUSES))
        if tenant_id is not None:
            stmt = stmt.where(Obligation.tenant_id == tenant_id)
        if counterparty_id is not None:
            stmt = stmt.where(Obligation.counterparty_id == counterparty_id)
        stmt = stmt.order_by(Obligation.due_date.is_(None), Obligation.due_date, Obligation.created_at)

        obligations = list(self.session.execute(stmt).scalars())
        counts = self._transaction_counts([o.id for o in obligations])
        return [self._to_balance(o, counts.get(o.id, 0)) for o in obligations]

    def outstanding_total(
        self,
        tenant_id: UUID | None = None,
        kind: str | None = None,
    ) -> Decimal:
        """Sum of remaining amounts over open obligations."""
        stmt = select(Obligation.total_amount, Obligation.paid_amount).where(
            Obligation.status.in_(_OPEN_STATUSES)
        )
        if tenant_id is not None:
            stmt = stmt.where(Obligation.tenant_id == tenant_id)
        if kind is not None:
            stmt = stmt.where(Obligation.kind == kind)

        total = ZERO
        for total_amount, paid_amount in self.session.execute(stmt).all():
            total += remaining(total_amount, paid_amount)
        return round_money(total)

    def settlement_history(self, obligation_id: UUID) -> list[SettlementDTO]:
        """Every settlement recorded against an obligation, oldest first."""
        rows = self.session.execute(
            select(SettlementTransaction, ChequeDetail)
            .outerjoin(ChequeDetail, ChequeDetail.transaction_id == SettlementTransaction.id)
            .where(SettlementTransaction.obligation_id == obligation_id)
            .order_by(SettlementTransaction.sequence)
        ).all()
        return [
            SettlementDTO(
                id=txn.id,
                obligation_id=txn.obligation_id,
                sequence=txn.sequence,
                amount=txn.amount,
                applied_amount=txn.applied_amount,
                payment_mode=txn.payment_mode,
                transaction_date=txn.transaction_date,
                reference_number=txn.reference_number,
                cheque_number=cheque.cheque_number if cheque else None,
                cheque_status=cheque.status if cheque else None,
                replaced_by_id=cheque.replaced_by_id if cheque else None,
            )
            for txn, cheque in rows
        ]

    def pending_cheques(self) -> list[SettlementDTO]:
        """Cheque settlements still awaiting clearance."""
        rows = self.session.execute(
            select(SettlementTransaction, ChequeDetail)
            .join(ChequeDetail, ChequeDetail.transaction_id == SettlementTransaction.id)
            .where(ChequeDetail.status == ChequeStatus.PENDING.value)
            .order_by(SettlementTransaction.transaction_date, SettlementTransaction.sequence)
        ).all()
        return [
            SettlementDTO(
                id=txn.id,
                obligation_id=txn.obligation_id,
                sequence=txn.sequence,
                amount=txn.amount,
                applied_amount=txn.applied_amount,
                payment_mode=txn.payment_mode,
                transaction_date=txn.transaction_date,
                reference_number=txn.reference_number,
                cheque_number=cheque.cheque_number,
                cheque_status=cheque.status,
                replaced_by_id=cheque.replaced_by_id,
            )
            for txn, cheque in rows
        ]
