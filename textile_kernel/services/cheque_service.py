"""
ChequeLifecycleManager -- clearance, bounce reversal and replacement.

Responsibility:
    Moves the cheque sub-record of a CHEQUE settlement along
    CHEQUE_WORKFLOW and keeps the owning obligation's paid_amount and status
    consistent with the outcome.

Architecture position:
    Kernel > Services.  Delegates the new settlement of a replacement to
    the TransactionRecorder inside the same unit of work.

Invariants enforced:
    - Lock order: obligation row first, then cheque row.  A concurrent bounce
      and clear of the same cheque serialize; the second one sees the
      terminal status and is rejected, so a reversal is never applied twice.
    - Only PENDING -> CLEARED | BOUNCED | REPLACED exist.  Repeats of a
      terminal status are invalid transitions, not no-ops.
    - Bounce reversal: paid = max(0, paid - amount), status re-derived.
    - CANCELLED obligations are absorbing: a bounce updates only the cheque
      and logs ``cheque_bounced_on_cancelled_obligation``.
    - Replacement nets to zero on paid_amount: the old amount is reversed and
      the same amount is recorded again under the new cheque.

Failure modes:
    - TransactionNotFoundError: unknown transaction.
    - ValidationError: not a cheque settlement, unknown status, REPLACED
      requested without new cheque details.
    - InvalidChequeTransitionError: transition not in CHEQUE_WORKFLOW.
    - ObligationCancelledError: replacement on a cancelled obligation.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from textile_kernel.domain.dtos import ChequeInput
from textile_kernel.domain.money import ZERO, derive_status, round_money
from textile_kernel.domain.values import ChequeStatus, PaymentMode
from textile_kernel.domain.workflow import CHEQUE_WORKFLOW
from textile_kernel.exceptions import (
    InvalidChequeTransitionError,
    ObligationCancelledError,
    ObligationNotFoundError,
    TransactionNotFoundError,
    ValidationError,
)
from textile_kernel.logging_config import LogContext, get_logger
from textile_kernel.models.obligation import Obligation
from textile_kernel.models.settlement import ChequeDetail, SettlementTransaction
from textile_kernel.services.base import BaseService
from textile_kernel.services.transaction_recorder import TransactionRecorder, validate_cheque_input

logger = get_logger("services.cheque")


class ChequeLifecycleManager(BaseService[ChequeDetail]):
    """Transitions cheques and applies their effect on obligations."""

    def update_cheque_status(
        self,
        transaction_id: UUID,
        new_status: ChequeStatus | str,
        *,
        actor_id: UUID,
        clearance_date: datetime | None = None,
        remarks: str | None = None,
    ) -> SettlementTransaction:
        """
        Clear or bounce the cheque of a settlement.

        Postconditions:
            - CLEARED: clearance_date set (given or clock now); obligation
              untouched.
            - BOUNCED: clearance_date cleared; obligation paid reduced by the
              settlement amount (floored at zero) and status re-derived,
              unless the obligation is CANCELLED.

        Raises:
            TransactionNotFoundError, ValidationError,
            InvalidChequeTransitionError.
        """
        actor_id = self._require_actor(actor_id)
        try:
            target = ChequeStatus(new_status)
        except ValueError:
            raise ValidationError("status", f"unknown cheque status {new_status!r}") from None
        if target is ChequeStatus.REPLACED:
            raise ValidationError("status", "use replace_cheque() to supply the new cheque")

        txn = self._get_cheque_transaction(transaction_id)

        with LogContext.bind(obligation_id=str(txn.obligation_id), actor_id=str(actor_id)):
            obligation, cheque = self._lock(txn)
            self._check_transition(txn, cheque, target)

            cheque.status = target.value
            cheque.updated_by_id = actor_id
            if remarks is not None:
                cheque.remarks = remarks

            if target is ChequeStatus.CLEARED:
                cheque.clearance_date = clearance_date or self.clock.now()
                self.session.flush()
                logger.info(
                    "cheque_cleared",
                    extra={
                        "transaction_id": str(txn.id),
                        "cheque_number": cheque.cheque_number,
                    },
                )
                return txn

            cheque.clearance_date = None
            if obligation.is_cancelled:
                self.session.flush()
                logger.warning(
                    "cheque_bounced_on_cancelled_obligation",
                    extra={
                        "transaction_id": str(txn.id),
                        "cheque_number": cheque.cheque_number,
                        "amount": str(txn.amount),
                    },
                )
                return txn

            self._reverse(obligation, txn, actor_id)
            self.session.flush()
            logger.info(
                "cheque_bounced",
                extra={
                    "transaction_id": str(txn.id),
                    "cheque_number": cheque.cheque_number,
                    "amount": str(txn.amount),
                    "paid_amount": str(obligation.paid_amount),
                    "status": obligation.status,
                },
            )
            return txn

    def replace_cheque(
        self,
        transaction_id: UUID,
        new_cheque: ChequeInput,
        *,
        actor_id: UUID,
        transaction_date: datetime | None = None,
        notes: str | None = None,
    ) -> SettlementTransaction:
        """
        Replace a PENDING cheque with a new one for the same amount.

        The old cheque moves to REPLACED and points at the new settlement.

        Returns:
            The new SettlementTransaction carrying ``new_cheque``.

        Raises:
            TransactionNotFoundError, ValidationError,
            InvalidChequeTransitionError, ObligationCancelledError.
        """
        actor_id = self._require_actor(actor_id)
        if new_cheque is None:
            raise ValidationError("cheque", "replacement cheque details are required")
        validate_cheque_input(PaymentMode.CHEQUE, new_cheque)

        txn = self._get_cheque_transaction(transaction_id)

        with LogContext.bind(obligation_id=str(txn.obligation_id), actor_id=str(actor_id)):
            obligation, cheque = self._lock(txn)
            self._check_transition(txn, cheque, ChequeStatus.REPLACED)
            if obligation.is_cancelled:
                raise ObligationCancelledError(str(obligation.id))

            self._reverse(obligation, txn, actor_id)
            self.session.flush()

            replacement = TransactionRecorder(self.session, self.clock).record_transaction(
                obligation.id,
                txn.amount,
                PaymentMode.CHEQUE,
                actor_id=actor_id,
                cheque=new_cheque,
                transaction_date=transaction_date,
                reference_number=txn.reference_number,
                notes=notes or f"Replaces cheque {cheque.cheque_number}",
            )

            cheque.status = ChequeStatus.REPLACED.value
            cheque.replaced_by_id = replacement.id
            cheque.clearance_date = None
            cheque.updated_by_id = actor_id
            self.session.flush()

            logger.info(
                "cheque_replaced",
                extra={
                    "transaction_id": str(txn.id),
                    "replacement_transaction_id": str(replacement.id),
                    "old_cheque_number": cheque.cheque_number,
                    "new_cheque_number": new_cheque.number,
                    "paid_amount": str(obligation.paid_amount),
                },
            )
            return replacement

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _get_cheque_transaction(self, transaction_id: UUID) -> SettlementTransaction:
        txn = self.session.get(SettlementTransaction, transaction_id)
        if txn is None:
            raise TransactionNotFoundError(str(transaction_id))
        if not txn.is_cheque:
            raise ValidationError(
                "transaction_id",
                f"transaction {transaction_id} is a {txn.payment_mode} payment, not a cheque",
            )
        return txn

    def _lock(self, txn: SettlementTransaction) -> tuple[Obligation, ChequeDetail]:
        obligation = self._get_for_update(Obligation, txn.obligation_id, ObligationNotFoundError)
        cheque = self.session.execute(
            select(ChequeDetail)
            .where(ChequeDetail.transaction_id == txn.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if cheque is None:
            raise ValidationError("transaction_id", f"transaction {txn.id} has no cheque record")
        return obligation, cheque

    @staticmethod
    def _check_transition(
        txn: SettlementTransaction, cheque: ChequeDetail, target: ChequeStatus
    ) -> None:
        if not CHEQUE_WORKFLOW.allows(cheque.status, target.value):
            logger.info(
                "cheque_transition_rejected",
                extra={
                    "transaction_id": str(txn.id),
                    "from_status": cheque.status,
                    "to_status": target.value,
                },
            )
            raise InvalidChequeTransitionError(str(txn.id), cheque.status, target.value)

    @staticmethod
    def _reverse(obligation: Obligation, txn: SettlementTransaction, actor_id: UUID) -> None:
        new_paid = max(ZERO, round_money(obligation.paid_amount - txn.applied_amount))
        obligation.paid_amount = new_paid
        obligation.status = derive_status(obligation.total_amount, new_paid).value
        obligation.updated_by_id = actor_id
