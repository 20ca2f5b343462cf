"""
Data transfer objects passed into and returned from kernel services.

Immutable value objects; no ORM references.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class ChequeInput:
    """Cheque details supplied with a CHEQUE settlement."""

    number: str
    bank: str
    branch: str | None = None
    issue_date: datetime | None = None
    remarks: str | None = None


@dataclass(frozen=True)
class AdjustmentResult:
    """Outcome of one Inventory Guard adjustment."""

    stock_id: UUID
    new_quantity: Decimal
    applied_delta: Decimal
    requested_delta: Decimal
    movement_id: UUID

    @property
    def was_clamped(self) -> bool:
        return self.applied_delta != self.requested_delta


@dataclass(frozen=True)
class ObligationBalance:
    """Read model of an obligation's settlement position."""

    obligation_id: UUID
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    status: str
    transaction_count: int
