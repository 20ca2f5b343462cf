"""
ObligationService -- the Obligation Store's write side.

Responsibility:
    Opens payables, receivables, bills and khata entries, and cancels them.
    Settlement itself belongs to the Transaction Recorder and the Cheque
    Lifecycle Manager; this service never touches paid_amount.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - A new obligation starts with paid_amount 0.00 and the status derived
      from (total, 0).
    - CANCELLED is explicit and absorbing: no further settlement or
      reversal moves the obligation out of it.
    - Counterparty and tenant are referenced by id and must exist.

Failure modes:
    - ValidationError on an unknown kind, a bill without a bill type, or a
      negative total.
    - PartyNotFoundError / KhataNotFoundError on dangling references.
    - ObligationNotFoundError / ObligationCancelledError on cancel.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from textile_kernel.domain.money import ZERO, derive_status, to_money
from textile_kernel.domain.values import ObligationStatus
from textile_kernel.exceptions import (
    KhataNotFoundError,
    ObligationCancelledError,
    ObligationNotFoundError,
    PartyNotFoundError,
    ValidationError,
)
from textile_kernel.logging_config import get_logger
from textile_kernel.models.obligation import BillType, Obligation, ObligationKind
from textile_kernel.models.party import Khata, Party
from textile_kernel.services.base import BaseService

logger = get_logger("services.obligation")


class ObligationService(BaseService[Obligation]):
    """Create and cancel obligations."""

    def create_obligation(
        self,
        kind: ObligationKind | str,
        total_amount: Decimal | int | str,
        *,
        actor_id: UUID,
        bill_type: BillType | str | None = None,
        reference: str | None = None,
        due_date: date | None = None,
        counterparty_id: UUID | None = None,
        tenant_id: UUID | None = None,
        description: str | None = None,
    ) -> Obligation:
        """
        Open a new obligation.

        Preconditions:
            - ``total_amount`` is a finite, non-negative amount.
            - ``bill_type`` is given iff ``kind`` is BILL.

        Postconditions:
            - paid_amount is 0.00; status is derive_status(total, 0).

        Raises:
            ValidationError: Invalid kind, bill type or amount.
            PartyNotFoundError: Unknown counterparty.
            KhataNotFoundError: Unknown tenant khata.
        """
        actor_id = self._require_actor(actor_id)
        try:
            kind = ObligationKind(kind)
        except ValueError:
            raise ValidationError("kind", f"unknown obligation kind {kind!r}") from None

        if kind is ObligationKind.BILL:
            if bill_type is None:
                raise ValidationError("bill_type", "a bill needs a bill type (PURCHASE or SALE)")
            try:
                bill_type = BillType(bill_type)
            except ValueError:
                raise ValidationError("bill_type", f"unknown bill type {bill_type!r}") from None
        elif bill_type is not None:
            raise ValidationError("bill_type", f"only bills carry a bill type, not {kind.value}")

        total = to_money(total_amount, "total_amount")
        if total < ZERO:
            raise ValidationError("total_amount", "must not be negative")

        if counterparty_id is not None and self.session.get(Party, counterparty_id) is None:
            raise PartyNotFoundError(str(counterparty_id))
        if tenant_id is not None and self.session.get(Khata, tenant_id) is None:
            raise KhataNotFoundError(str(tenant_id))

        obligation = Obligation(
            kind=kind.value,
            bill_type=bill_type.value if bill_type is not None else None,
            reference=reference,
            total_amount=total,
            paid_amount=ZERO,
            settlement_count=0,
            status=derive_status(total, ZERO).value,
            due_date=due_date,
            counterparty_id=counterparty_id,
            tenant_id=tenant_id,
            description=description,
            created_by_id=actor_id,
        )
        self.session.add(obligation)
        self.session.flush()

        logger.info(
            "obligation_created",
            extra={
                "obligation_id": str(obligation.id),
                "kind": obligation.kind,
                "total_amount": str(total),
                "status": obligation.status,
            },
        )
        return obligation

    def get_for_update(self, obligation_id: UUID) -> Obligation:
        """Load an obligation under a row-level lock."""
        return self._get_for_update(Obligation, obligation_id, ObligationNotFoundError)

    def cancel_obligation(
        self,
        obligation_id: UUID,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> Obligation:
        """
        Move an obligation to CANCELLED.

        paid_amount is left as it is: the settlement history stays visible.

        Raises:
            ObligationNotFoundError: Unknown obligation.
            ObligationCancelledError: Already cancelled.
        """
        actor_id = self._require_actor(actor_id)
        obligation = self.get_for_update(obligation_id)
        if obligation.is_cancelled:
            raise ObligationCancelledError(str(obligation_id))

        previous_status = obligation.status
        obligation.status = ObligationStatus.CANCELLED.value
        obligation.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "obligation_cancelled",
            extra={
                "obligation_id": str(obligation_id),
                "previous_status": previous_status,
                "paid_amount": str(obligation.paid_amount),
                "reason": reason,
            },
        )
        return obligation
