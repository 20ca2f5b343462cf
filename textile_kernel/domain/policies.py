"""
Over-consumption policies for the Inventory Quantity Guard.

A policy decides what happens when an adjustment would drive a stock's
quantity below zero.  The Guard hands it the locked current quantity and
the requested delta and persists whatever it returns.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from uuid import UUID

from textile_kernel.exceptions import InsufficientStockError


class OverConsumptionPolicy(ABC):
    """Resolve an adjustment that would leave a negative quantity."""

    name: str = ""

    @abstractmethod
    def resolve(self, stock_id: UUID, current: Decimal, delta: Decimal) -> Decimal:
        """Return the delta to apply.  Only called when current + delta < 0."""
        ...


class ClampPolicy(OverConsumptionPolicy):
    """Consume everything that is left: the quantity lands on zero."""

    name = "clamp"

    def resolve(self, stock_id: UUID, current: Decimal, delta: Decimal) -> Decimal:
        return -current


class RejectPolicy(OverConsumptionPolicy):
    """Refuse the adjustment outright."""

    name = "reject"

    def resolve(self, stock_id: UUID, current: Decimal, delta: Decimal) -> Decimal:
        raise InsufficientStockError(stock_id, -delta, current)


_POLICIES: dict[str, type[OverConsumptionPolicy]] = {
    ClampPolicy.name: ClampPolicy,
    RejectPolicy.name: RejectPolicy,
}


def policy_for_name(name: str) -> OverConsumptionPolicy:
    """Build a policy from its configuration name ("clamp" or "reject")."""
    try:
        return _POLICIES[name.strip().lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown over-consumption policy {name!r}; "
            f"expected one of {sorted(_POLICIES)}"
        ) from None
