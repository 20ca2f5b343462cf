"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The ledger is only reconcilable if its history cannot be rewritten.  A
settlement that was recorded stays recorded; a bounced cheque is reversed by
moving the obligation's paid amount, never by editing or deleting the
settlement row.  Stock is corrected by compensating movements, never by
touching old ones.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                  | What is protected                  | Why
------------------------|------------------------------------|--------------------------------
Obligation              | total_amount                       | Remaining is computed against it
SettlementTransaction   | obligation, amount, mode, date;    | Settlement history is the audit
                        | no DELETE                          | trail of every paid amount
InventoryMovement       | ALWAYS (from creation)             | Sum of deltas explains stock

Raw SQL and bulk UPDATE statements bypass these listeners.  Services in this
package only mutate through the ORM.
"""

from sqlalchemy import event, inspect

from textile_kernel.exceptions import ImmutabilityViolationError
from textile_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

OBLIGATION_IMMUTABLE_FIELDS = frozenset({"total_amount"})

SETTLEMENT_IMMUTABLE_FIELDS = frozenset({
    "obligation_id",
    "amount",
    "applied_amount",
    "payment_mode",
    "transaction_date",
    "sequence",
})


def _changed_fields(target, fields: frozenset[str]) -> list[str]:
    insp = inspect(target)
    changed = []
    for key in fields:
        if insp.attrs[key].history.has_changes():
            changed.append(key)
    return sorted(changed)


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# =============================================================================
# Obligation
# =============================================================================


def _check_obligation_immutability(mapper, connection, target):
    """total_amount is fixed at creation."""
    changed = _changed_fields(target, OBLIGATION_IMMUTABLE_FIELDS)
    if changed:
        _block(
            "Obligation",
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' after creation",
            field=changed[0],
        )


# =============================================================================
# SettlementTransaction
# =============================================================================


def _check_settlement_immutability(mapper, connection, target):
    """
    Financial fields of a settlement never change.

    The cheque sub-record lives in its own table and carries the only
    mutable lifecycle state, so it is not checked here.
    """
    changed = _changed_fields(target, SETTLEMENT_IMMUTABLE_FIELDS)
    if changed:
        _block(
            "SettlementTransaction",
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on a recorded settlement",
            field=changed[0],
        )


def _check_settlement_delete(mapper, connection, target):
    _block(
        "SettlementTransaction",
        target,
        "DELETE",
        "Settlements cannot be deleted; bounce or replace the cheque instead",
    )


# =============================================================================
# InventoryMovement
# =============================================================================


def _check_movement_immutability(mapper, connection, target):
    _block(
        "InventoryMovement",
        target,
        "UPDATE",
        "Inventory movements are append-only",
    )


def _check_movement_delete(mapper, connection, target):
    _block(
        "InventoryMovement",
        target,
        "DELETE",
        "Inventory movements cannot be deleted; record a compensating movement",
    )


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from textile_kernel.models.inventory import InventoryMovement
    from textile_kernel.models.obligation import Obligation
    from textile_kernel.models.settlement import SettlementTransaction

    return (
        (Obligation, "before_update", _check_obligation_immutability),
        (SettlementTransaction, "before_update", _check_settlement_immutability),
        (SettlementTransaction, "before_delete", _check_settlement_delete),
        (InventoryMovement, "before_update", _check_movement_immutability),
        (InventoryMovement, "before_delete", _check_movement_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; a listener already in place is skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
