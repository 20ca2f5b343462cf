"""Selectors for the textile kernel (read side)."""

from textile_kernel.selectors.inventory_selector import (
    InventorySelector,
    MovementDTO,
    StockDTO,
)
from textile_kernel.selectors.obligation_selector import ObligationSelector, SettlementDTO

__all__ = [
    "InventorySelector",
    "MovementDTO",
    "StockDTO",
    "ObligationSelector",
    "SettlementDTO",
]
