"""
Append-only persistence tests.

Verifies:
- Obligation total_amount is fixed after creation
- Settlement financial fields are immutable and settlements are never deleted
- Inventory movements are never updated or deleted
- Mutable lifecycle state (cheque status, obligation paid/status) still moves
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from textile_kernel.exceptions import ImmutabilityViolationError
from textile_kernel.models.inventory import InventoryMovement
from textile_kernel.models.settlement import SettlementTransaction


@pytest.fixture
def rollback_after_violation(session):
    """A flush that raised leaves the session needing a rollback."""
    yield
    session.rollback()


class TestObligationImmutability:

    def test_total_amount_cannot_change(self, session, create_obligation, rollback_after_violation):
        obligation = create_obligation("1000.00")

        obligation.total_amount = Decimal("2000.00")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.entity_type == "Obligation"
        assert "total_amount" in exc_info.value.reason

    def test_description_can_change(self, session, create_obligation):
        obligation = create_obligation("1000.00")

        obligation.description = "Corrected narration"
        session.flush()


class TestSettlementImmutability:

    def test_amount_cannot_change(
        self, session, recorder, create_obligation, test_actor_id, rollback_after_violation
    ):
        obligation = create_obligation("1000.00")
        txn = recorder.record_transaction(obligation.id, "100.00", "CASH", actor_id=test_actor_id)

        txn.amount = Decimal("90.00")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_applied_amount_cannot_change(
        self, session, recorder, create_obligation, test_actor_id, rollback_after_violation
    ):
        obligation = create_obligation("1000.00")
        txn = recorder.record_transaction(obligation.id, "100.00", "CASH", actor_id=test_actor_id)

        txn.applied_amount = Decimal("50.00")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert "applied_amount" in exc_info.value.reason

    def test_cannot_delete(
        self, session, recorder, create_obligation, test_actor_id, rollback_after_violation
    ):
        obligation = create_obligation("1000.00")
        txn = recorder.record_transaction(obligation.id, "100.00", "CASH", actor_id=test_actor_id)

        session.delete(session.get(SettlementTransaction, txn.id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_notes_can_change(self, session, recorder, create_obligation, test_actor_id):
        obligation = create_obligation("1000.00")
        txn = recorder.record_transaction(obligation.id, "100.00", "CASH", actor_id=test_actor_id)

        txn.notes = "Received at counter"
        session.flush()


class TestMovementImmutability:

    def _movement(self, session, create_stock):
        stock = create_stock("10")
        return session.execute(
            select(InventoryMovement).where(InventoryMovement.stock_id == stock.id)
        ).scalar_one()

    def test_cannot_update(self, session, create_stock, rollback_after_violation):
        movement = self._movement(session, create_stock)

        movement.notes = "edited"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "InventoryMovement"

    def test_cannot_delete(self, session, create_stock, rollback_after_violation):
        movement = self._movement(session, create_stock)

        session.delete(movement)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_violation_logged(self, session, create_stock, captured_logs, rollback_after_violation):
        movement = self._movement(session, create_stock)

        movement.notes = "edited"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

        records = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert records[0]["operation"] == "UPDATE"
        assert records[0]["level"] == "ERROR"
