"""
Tests for ChequeLifecycleManager.

Covers:
- Clearance leaves the obligation alone
- Bounce reverses the settlement (paid floored at zero, status re-derived)
- Repeated and illegal transitions are rejected, never double-applied
- Replacement nets to zero on paid_amount
- CANCELLED obligations are not resurrected by a bounce
"""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from textile_kernel.domain.dtos import ChequeInput
from textile_kernel.domain.values import ChequeStatus, ObligationStatus
from textile_kernel.exceptions import (
    AmountExceedsRemainingError,
    InvalidChequeTransitionError,
    InvalidTransitionError,
    ObligationCancelledError,
    TransactionNotFoundError,
    ValidationError,
)
from textile_kernel.models.settlement import ChequeDetail


class TestClear:

    def test_clear_sets_clearance_date_only(
        self, cheque_manager, create_obligation, record_cheque, obligation_selector, test_actor_id
    ):
        obligation = create_obligation("500.00")
        txn = record_cheque(obligation.id, "200.00")

        cheque_manager.update_cheque_status(txn.id, ChequeStatus.CLEARED, actor_id=test_actor_id)

        assert txn.cheque.status == ChequeStatus.CLEARED.value
        assert txn.cheque.clearance_date is not None
        balance = obligation_selector.get_balance(obligation.id)
        assert balance.paid_amount == Decimal("200.00")
        assert balance.status == ObligationStatus.PARTIAL.value

    def test_clear_with_supplied_date(
        self, cheque_manager, create_obligation, record_cheque, test_actor_id
    ):
        obligation = create_obligation("500.00")
        txn = record_cheque(obligation.id, "200.00")

        cheque_manager.update_cheque_status(
            txn.id,
            "CLEARED",
            actor_id=test_actor_id,
            clearance_date=datetime(2024, 3, 15, 10, 0),
        )

        assert txn.cheque.clearance_date.date() == datetime(2024, 3, 15).date()


class TestBounce:

    def test_bounce_of_full_payment_reopens_obligation(
        self, cheque_manager, create_obligation, record_cheque, obligation_selector, test_actor_id
    ):
        """A COMPLETED obligation paid by one cheque goes back to PENDING."""
        obligation = create_obligation("500.00")
        txn = record_cheque(obligation.id, "500.00")
        assert obligation_selector.get_balance(obligation.id).status == ObligationStatus.COMPLETED.value

        cheque_manager.update_cheque_status(txn.id, ChequeStatus.BOUNCED, actor_id=test_actor_id)

        balance = obligation_selector.get_balance(obligation.id)
        assert balance.paid_amount == Decimal("0.00")
        assert balance.status == ObligationStatus.PENDING.value
        assert balance.remaining_amount == Decimal("500.00")
        assert txn.cheque.status == ChequeStatus.BOUNCED.value
        assert txn.cheque.clearance_date is None

    def test_bounce_with_other_payments_leaves_partial(
        self, cheque_manager, recorder, create_obligation, record_cheque,
        obligation_selector, test_actor_id,
    ):
        obligation = create_obligation("1000.00")
        recorder.record_transaction(obligation.id, "300.00", "CASH", actor_id=test_actor_id)
        txn = record_cheque(obligation.id, "700.00")

        cheque_manager.update_cheque_status(txn.id, "BOUNCED", actor_id=test_actor_id)

        balance = obligation_selector.get_balance(obligation.id)
        assert balance.paid_amount == Decimal("300.00")
        assert balance.status == ObligationStatus.PARTIAL.value

    def test_bounce_frees_room_for_new_payment(
        self, cheque_manager, recorder, create_obligation, record_cheque,
        obligation_selector, test_actor_id,
    ):
        obligation = create_obligation("500.00")
        txn = record_cheque(obligation.id, "500.00")
        cheque_manager.update_cheque_status(txn.id, "BOUNCED", actor_id=test_actor_id)

        recorder.record_transaction(obligation.id, "500.00", "CASH", actor_id=test_actor_id)

        assert obligation_selector.get_balance(obligation.id).status == ObligationStatus.COMPLETED.value

    def test_cheque_on_completed_obligation_rejected(
        self, recorder, create_obligation, record_cheque, obligation_selector, test_actor_id
    ):
        """One paisa of slack on a settled obligation would add nothing to paid."""
        obligation = create_obligation("100.00")
        recorder.record_transaction(obligation.id, "100.00", "CASH", actor_id=test_actor_id)

        with pytest.raises(AmountExceedsRemainingError):
            record_cheque(obligation.id, "0.01")

        balance = obligation_selector.get_balance(obligation.id)
        assert balance.paid_amount == Decimal("100.00")
        assert balance.transaction_count == 1

    def test_bounce_reverses_only_the_applied_amount(
        self, cheque_manager, recorder, create_obligation, record_cheque,
        obligation_selector, test_actor_id,
    ):
        obligation = create_obligation("100.00")
        recorder.record_transaction(obligation.id, "60.00", "CASH", actor_id=test_actor_id)
        # 40.01 is within the slack; only 40.00 reaches paid
        txn = record_cheque(obligation.id, "40.01")
        assert txn.amount == Decimal("40.01")
        assert txn.applied_amount == Decimal("40.00")

        cheque_manager.update_cheque_status(txn.id, "BOUNCED", actor_id=test_actor_id)

        balance = obligation_selector.get_balance(obligation.id)
        assert balance.paid_amount == Decimal("60.00")
        assert balance.status == ObligationStatus.PARTIAL.value
        history = obligation_selector.settlement_history(obligation.id)
        assert sum(h.applied_amount for h in history if not h.is_bounced) == balance.paid_amount

    def test_bounce_logged(
        self, cheque_manager, create_obligation, record_cheque, test_actor_id, captured_logs
    ):
        obligation = create_obligation("500.00")
        txn = record_cheque(obligation.id, "500.00", number="009911")

        cheque_manager.update_cheque_status(txn.id, "BOUNCED", actor_id=test_actor_id)

        records = [r for r in captured_logs() if r["message"] == "cheque_bounced"]
        assert len(records) == 1
        assert records[0]["cheque_number"] == "009911"
        assert records[0]["obligation_id"] == str(obligation.id)


class TestIllegalTransitions:

    def test_cleared_cannot_bounce(
        self, cheque_manager, create_obligation, record_cheque, obligation_selector, test_actor_id
    ):
        obligation = create_obligation("500.00")
        txn = record_cheque(obligation.id, "500.00")
        cheque_manager.update_cheque_status(txn.id, "CLEARED", actor_id=test_actor_id)

        with pytest.raises(InvalidChequeTransitionError) as exc_info:
            cheque_manager.update_cheque_status(txn.id, "BOUNCED", actor_id=test_actor_id)

        assert exc_info.value.from_status == ChequeStatus.CLEARED.value
        assert exc_info.value.to_status == ChequeStatus.BOUNCED.value
        assert exc_info.value.http_status == 409
        assert obligation_selector.get_balance(obligation.id).paid_amount == Decimal("500.00")

    def test_second_bounce_is_rejected_not_reapplied(
        self, cheque_manager, recorder, create_obligation, record_cheque,
        obligation_selector, test_actor_id,
    ):
        obligation = create_obligation("1000.00")
        recorder.record_transaction(obligation.id, "500.00", "CASH", actor_id=test_actor_id)
        txn = record_cheque(obligation.id, "500.00")
        cheque_manager.update_cheque_status(txn.id, "BOUNCED", actor_id=test_actor_id)

        with pytest.raises(InvalidTransitionError):
            cheque_manager.update_cheque_status(txn.id, "BOUNCED", actor_id=test_actor_id)

        assert obligation_selector.get_balance(obligation.id).paid_amount == Decimal("500.00")

    def test_second_clear_is_rejected(
        self, cheque_manager, create_obligation, record_cheque, test_actor_id
    ):
        obligation = create_obligation("500.00")
        txn = record_cheque(obligation.id, "100.00")
        cheque_manager.update_cheque_status(txn.id, "CLEARED", actor_id=test_actor_id)

        with pytest.raises(InvalidChequeTransitionError):
            cheque_manager.update_cheque_status(txn.id, "CLEARED", actor_id=test_actor_id)

    def test_back_to_pending_rejected(
        self, cheque_manager, create_obligation, record_cheque, test_actor_id
    ):
        obligation = create_obligation("500.00")
        txn = record_cheque(obligation.id, "100.00")

        with pytest.raises(InvalidChequeTransitionError):
            cheque_manager.update_cheque_status(txn.id, "PENDING", actor_id=test_actor_id)

    def test_rejection_logged(
        self, cheque_manager, create_obligation, record_cheque, test_actor_id, captured_logs
    ):
        obligation = create_obligation("500.00")
        txn = record_cheque(obligation.id, "100.00")
        cheque_manager.update_cheque_status(txn.id, "CLEARED", actor_id=test_actor_id)

        with pytest.raises(InvalidChequeTransitionError):
            cheque_manager.update_cheque_status(txn.id, "BOUNCED", actor_id=test_actor_id)

        assert any(r["message"] == "cheque_transition_rejected" for r in captured_logs())

    def test_replaced_through_status_update_rejected(
        self, cheque_manager, create_obligation, record_cheque, test_actor_id
    ):
        obligation = create_obligation("500.00")
        txn = record_cheque(obligation.id, "100.00")

        with pytest.raises(ValidationError):
            cheque_manager.update_cheque_status(txn.id, "REPLACED", actor_id=test_actor_id)

    def test_unknown_status(self, cheque_manager, create_obligation, record_cheque, test_actor_id):
        obligation = create_obligation("500.00")
        txn = record_cheque(obligation.id, "100.00")

        with pytest.raises(ValidationError):
            cheque_manager.update_cheque_status(txn.id, "LOST", actor_id=test_actor_id)

    def test_cash_transaction_has_no_cheque(
        self, cheque_manager, recorder, create_obligation, test_actor_id
    ):
        obligation = create_obligation("500.00")
        txn = recorder.record_transaction(obligation.id, "100.00", "CASH", actor_id=test_actor_id)

        with pytest.raises(ValidationError) as exc_info:
            cheque_manager.update_cheque_status(txn.id, "CLEARED", actor_id=test_actor_id)
        assert exc_info.value.field == "transaction_id"

    def test_unknown_transaction(self, cheque_manager, test_actor_id):
        with pytest.raises(TransactionNotFoundError):
            cheque_manager.update_cheque_status(uuid4(), "CLEARED", actor_id=test_actor_id)


class TestReplace:

    def test_replacement_nets_to_zero(
        self, cheque_manager, create_obligation, record_cheque, obligation_selector, test_actor_id
    ):
        obligation = create_obligation("1000.00")
        old = record_cheque(obligation.id, "400.00", number="000100")

        new = cheque_manager.replace_cheque(
            old.id, ChequeInput(number="000200", bank="MCB"), actor_id=test_actor_id
        )

        balance = obligation_selector.get_balance(obligation.id)
        assert balance.paid_amount == Decimal("400.00")
        assert balance.status == ObligationStatus.PARTIAL.value
        assert balance.transaction_count == 2

        assert old.cheque.status == ChequeStatus.REPLACED.value
        assert old.cheque.replaced_by_id == new.id
        assert new.cheque.status == ChequeStatus.PENDING.value
        assert new.cheque.cheque_number == "000200"
        assert new.amount == Decimal("400.00")

    def test_replacement_cheque_can_bounce(
        self, cheque_manager, create_obligation, record_cheque, obligation_selector, test_actor_id
    ):
        obligation = create_obligation("400.00")
        old = record_cheque(obligation.id, "400.00")
        new = cheque_manager.replace_cheque(
            old.id, ChequeInput(number="777", bank="MCB"), actor_id=test_actor_id
        )

        cheque_manager.update_cheque_status(new.id, "BOUNCED", actor_id=test_actor_id)

        balance = obligation_selector.get_balance(obligation.id)
        assert balance.paid_amount == Decimal("0.00")
        assert balance.status == ObligationStatus.PENDING.value

    def test_replaced_cheque_cannot_be_replaced_again(
        self, cheque_manager, create_obligation, record_cheque, test_actor_id
    ):
        obligation = create_obligation("400.00")
        old = record_cheque(obligation.id, "400.00")
        cheque_manager.replace_cheque(
            old.id, ChequeInput(number="777", bank="MCB"), actor_id=test_actor_id
        )

        with pytest.raises(InvalidChequeTransitionError):
            cheque_manager.replace_cheque(
                old.id, ChequeInput(number="778", bank="MCB"), actor_id=test_actor_id
            )

    def test_cleared_cheque_cannot_be_replaced(
        self, cheque_manager, create_obligation, record_cheque, test_actor_id
    ):
        obligation = create_obligation("400.00")
        txn = record_cheque(obligation.id, "400.00")
        cheque_manager.update_cheque_status(txn.id, "CLEARED", actor_id=test_actor_id)

        with pytest.raises(InvalidChequeTransitionError):
            cheque_manager.replace_cheque(
                txn.id, ChequeInput(number="778", bank="MCB"), actor_id=test_actor_id
            )

    def test_replacement_requires_valid_cheque(
        self, cheque_manager, create_obligation, record_cheque, test_actor_id
    ):
        obligation = create_obligation("400.00")
        txn = record_cheque(obligation.id, "400.00")

        with pytest.raises(ValidationError):
            cheque_manager.replace_cheque(
                txn.id, ChequeInput(number="", bank="MCB"), actor_id=test_actor_id
            )


class TestCancelledObligation:

    def test_bounce_does_not_resurrect_cancelled_obligation(
        self, cheque_manager, obligation_service, create_obligation, record_cheque,
        obligation_selector, test_actor_id, captured_logs,
    ):
        obligation = create_obligation("500.00")
        txn = record_cheque(obligation.id, "200.00")
        obligation_service.cancel_obligation(obligation.id, actor_id=test_actor_id)

        cheque_manager.update_cheque_status(txn.id, "BOUNCED", actor_id=test_actor_id)

        balance = obligation_selector.get_balance(obligation.id)
        assert balance.status == ObligationStatus.CANCELLED.value
        assert balance.paid_amount == Decimal("200.00")
        assert txn.cheque.status == ChequeStatus.BOUNCED.value

        warnings = [
            r for r in captured_logs() if r["message"] == "cheque_bounced_on_cancelled_obligation"
        ]
        assert len(warnings) == 1
        assert warnings[0]["level"] == "WARNING"

    def test_replace_on_cancelled_obligation_rejected(
        self, cheque_manager, obligation_service, create_obligation, record_cheque,
        session, test_actor_id,
    ):
        obligation = create_obligation("500.00")
        txn = record_cheque(obligation.id, "200.00")
        obligation_service.cancel_obligation(obligation.id, actor_id=test_actor_id)

        with pytest.raises(ObligationCancelledError):
            cheque_manager.replace_cheque(
                txn.id, ChequeInput(number="999", bank="MCB"), actor_id=test_actor_id
            )

        cheque = session.get(ChequeDetail, txn.cheque.id)
        assert cheque.status == ChequeStatus.PENDING.value
