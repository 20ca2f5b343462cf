"""
TransactionRecorder -- append a settlement and move the obligation with it.

Responsibility:
    Records one payment or receipt against one obligation and, in the same
    unit of work, raises the obligation's paid_amount and re-derives its
    status.  Cheque-mode settlements get a PENDING cheque sub-record.

Architecture position:
    Kernel > Services.  Uses domain/money.py for every amount comparison.

Invariants enforced:
    - Validation precedes mutation: amount, payment mode and cheque details
      are checked before the obligation row is even locked.
    - The obligation row is locked (SELECT ... FOR UPDATE) for the whole
      read-modify-write, so concurrent recordings serialize and the
      remaining amount they see is never stale.
    - No over-payment: an amount above remaining + TOLERANCE is rejected,
      and paid_amount is capped at total_amount so the one-unit slack never
      leaves an over-paid row.
    - paid_amount and status are written together.

Failure modes:
    - ValidationError: non-positive amount, unknown mode, missing or
      misplaced cheque details.
    - ObligationNotFoundError: unknown obligation.
    - ObligationCancelledError: obligation is CANCELLED.
    - AmountExceedsRemainingError: amount above what is left (carries limit).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from textile_kernel.domain.dtos import ChequeInput
from textile_kernel.domain.money import ZERO, derive_status, exceeds, remaining, round_money, to_money
from textile_kernel.domain.values import ChequeStatus, PaymentMode
from textile_kernel.exceptions import (
    AmountExceedsRemainingError,
    ObligationCancelledError,
    ObligationNotFoundError,
    ValidationError,
)
from textile_kernel.logging_config import LogContext, get_logger
from textile_kernel.models.obligation import Obligation
from textile_kernel.models.settlement import ChequeDetail, SettlementTransaction
from textile_kernel.services.base import BaseService

logger = get_logger("services.transaction_recorder")


def validate_cheque_input(mode: PaymentMode, cheque: ChequeInput | None) -> None:
    if mode is PaymentMode.CHEQUE:
        if cheque is None:
            raise ValidationError("cheque", "cheque details are required for a CHEQUE payment")
        if not cheque.number or not cheque.number.strip():
            raise ValidationError("cheque.number", "cheque number is required")
        if not cheque.bank or not cheque.bank.strip():
            raise ValidationError("cheque.bank", "bank is required")
    elif cheque is not None:
        raise ValidationError("cheque", f"cheque details given for a {mode.value} payment")


class TransactionRecorder(BaseService[SettlementTransaction]):
    """
    Records settlements against obligations.

    Usage:
        with data_source.session_scope() as session:
            TransactionRecorder(session).record_transaction(
                obligation_id, "400.00", PaymentMode.CASH, actor_id=actor_id,
            )
    """

    def record_transaction(
        self,
        obligation_id: UUID,
        amount: Decimal | int | str,
        payment_mode: PaymentMode | str,
        *,
        actor_id: UUID,
        cheque: ChequeInput | None = None,
        transaction_date: datetime | None = None,
        reference_number: str | None = None,
        notes: str | None = None,
    ) -> SettlementTransaction:
        """
        Record one settlement and update the obligation atomically.

        Preconditions:
            - ``amount`` > 0.
            - ``cheque`` is given iff ``payment_mode`` is CHEQUE.

        Postconditions:
            - One SettlementTransaction row exists for this call.
            - obligation.paid_amount == min(total, old paid + amount).
            - obligation.status == derive_status(total, paid).
            - txn.applied_amount == new paid - old paid, and is > 0.

        Raises:
            ValidationError, ObligationNotFoundError, ObligationCancelledError,
            AmountExceedsRemainingError.
        """
        actor_id = self._require_actor(actor_id)
        value = to_money(amount, "amount")
        if value <= ZERO:
            raise ValidationError("amount", "must be greater than zero")
        try:
            mode = PaymentMode(payment_mode)
        except ValueError:
            raise ValidationError("payment_mode", f"unknown payment mode {payment_mode!r}") from None
        validate_cheque_input(mode, cheque)

        with LogContext.bind(obligation_id=str(obligation_id), actor_id=str(actor_id)):
            return self._record(
                obligation_id,
                value,
                mode,
                actor_id=actor_id,
                cheque=cheque,
                transaction_date=transaction_date,
                reference_number=reference_number,
                notes=notes,
            )

    def _record(
        self,
        obligation_id: UUID,
        amount: Decimal,
        mode: PaymentMode,
        *,
        actor_id: UUID,
        cheque: ChequeInput | None,
        transaction_date: datetime | None,
        reference_number: str | None,
        notes: str | None,
    ) -> SettlementTransaction:
        # INVARIANT: locked read-modify-write on the obligation row
        obligation = self._get_for_update(Obligation, obligation_id, ObligationNotFoundError)
        if obligation.is_cancelled:
            raise ObligationCancelledError(str(obligation_id))

        left = remaining(obligation.total_amount, obligation.paid_amount)
        # Nothing left to settle: even the one-minor-unit slack would add nothing to paid
        if left == ZERO or exceeds(amount, left):
            logger.info(
                "settlement_rejected",
                extra={"amount": str(amount), "remaining": str(left)},
            )
            raise AmountExceedsRemainingError(str(obligation_id), amount, left)

        # Capped at total: the TOLERANCE slack must not produce an over-paid row
        new_paid = min(round_money(obligation.paid_amount + amount), obligation.total_amount)
        applied = round_money(new_paid - obligation.paid_amount)

        obligation.settlement_count = (obligation.settlement_count or 0) + 1
        txn = SettlementTransaction(
            obligation_id=obligation.id,
            sequence=obligation.settlement_count,
            amount=amount,
            applied_amount=applied,
            payment_mode=mode.value,
            transaction_date=transaction_date or self.clock.now(),
            reference_number=reference_number,
            notes=notes,
            created_by_id=actor_id,
        )
        self.session.add(txn)
        self.session.flush()

        if cheque is not None:
            txn.cheque = ChequeDetail(
                transaction_id=txn.id,
                cheque_number=cheque.number.strip(),
                bank=cheque.bank.strip(),
                branch=cheque.branch,
                status=ChequeStatus.PENDING.value,
                issue_date=cheque.issue_date,
                remarks=cheque.remarks,
                created_by_id=actor_id,
            )

        obligation.paid_amount = new_paid
        obligation.status = derive_status(obligation.total_amount, new_paid).value
        obligation.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "settlement_recorded",
            extra={
                "transaction_id": str(txn.id),
                "amount": str(amount),
                "applied_amount": str(applied),
                "payment_mode": mode.value,
                "paid_amount": str(new_paid),
                "status": obligation.status,
            },
        )
        return txn
