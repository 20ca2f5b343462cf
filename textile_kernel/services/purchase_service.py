"""
Service layer for raw thread purchases.

A purchase lot is recorded when ordered and received into a raw stock item
later; receipt books the quantity through the InventoryGuard.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from textile_kernel.domain.money import ZERO, to_money, to_quantity
from textile_kernel.exceptions import (
    InvalidTransitionError,
    PartyNotFoundError,
    StockNotFoundError,
    ThreadPurchaseNotFoundError,
    ValidationError,
)
from textile_kernel.logging_config import get_logger
from textile_kernel.models.inventory import InventoryStock, MovementType, ReferenceType
from textile_kernel.models.party import Party
from textile_kernel.models.purchase import ColorStatus, ThreadPurchase
from textile_kernel.services.base import BaseService
from textile_kernel.services.inventory_guard import InventoryGuard

logger = get_logger("services.purchase")


class ThreadPurchaseService(BaseService[ThreadPurchase]):
    """Record thread purchase lots and receive them into stock."""

    def record_purchase(
        self,
        vendor_id: UUID,
        thread_type: str,
        quantity: Decimal | int | str,
        unit_price: Decimal | int | str,
        *,
        actor_id: UUID,
        unit_of_measure: str = "KG",
    ) -> ThreadPurchase:
        """
        Record an ordered (not yet received) RAW thread lot.

        Raises:
            ValidationError: Blank thread type, non-positive quantity,
                negative price.
            PartyNotFoundError: Unknown vendor.
        """
        actor_id = self._require_actor(actor_id)
        if not thread_type or not thread_type.strip():
            raise ValidationError("thread_type", "thread type is required")
        qty = to_quantity(quantity, "quantity")
        if qty <= 0:
            raise ValidationError("quantity", "must be greater than zero")
        price = to_money(unit_price, "unit_price")
        if price < ZERO:
            raise ValidationError("unit_price", "must not be negative")
        if self.session.get(Party, vendor_id) is None:
            raise PartyNotFoundError(str(vendor_id))

        purchase = ThreadPurchase(
            vendor_id=vendor_id,
            thread_type=thread_type.strip(),
            unit_of_measure=unit_of_measure,
            quantity=qty,
            unit_price=price,
            received=False,
            color_status=ColorStatus.RAW.value,
            created_by_id=actor_id,
        )
        self.session.add(purchase)
        self.session.flush()
        logger.info(
            "thread_purchase_recorded",
            extra={
                "purchase_id": str(purchase.id),
                "thread_type": purchase.thread_type,
                "quantity": str(qty),
            },
        )
        return purchase

    def receive_purchase(
        self,
        purchase_id: UUID,
        stock_id: UUID,
        *,
        actor_id: UUID,
        guard: InventoryGuard | None = None,
    ) -> ThreadPurchase:
        """
        Mark a lot received and add its quantity to ``stock_id``.

        Raises:
            ThreadPurchaseNotFoundError, StockNotFoundError,
            InvalidTransitionError: The lot was already received.
        """
        actor_id = self._require_actor(actor_id)
        purchase = self._get_for_update(ThreadPurchase, purchase_id, ThreadPurchaseNotFoundError)
        if purchase.received:
            raise InvalidTransitionError(f"Thread purchase {purchase_id} is already received")
        if self.session.get(InventoryStock, stock_id) is None:
            raise StockNotFoundError(str(stock_id))

        guard = guard or InventoryGuard(self.session, self.clock)
        guard.adjust_quantity(
            stock_id,
            purchase.quantity,
            actor_id=actor_id,
            movement_type=MovementType.PURCHASE,
            reference_type=ReferenceType.PURCHASE,
            reference_id=str(purchase.id),
            unit_cost=purchase.unit_price,
            notes=f"Received {purchase.thread_type}",
        )

        purchase.received = True
        purchase.stock_id = stock_id
        purchase.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "thread_purchase_received",
            extra={"purchase_id": str(purchase.id), "stock_id": str(stock_id)},
        )
        return purchase
