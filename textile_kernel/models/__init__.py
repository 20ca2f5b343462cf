"""Domain models for the textile kernel."""

from textile_kernel.models.dyeing import DyeingRun
from textile_kernel.models.inventory import (
    InventoryMovement,
    InventoryStock,
    MovementType,
    ProductType,
    ReferenceType,
)
from textile_kernel.models.obligation import (
    BillType,
    Direction,
    Obligation,
    ObligationKind,
)
from textile_kernel.models.party import Khata, Party, PartyType
from textile_kernel.models.purchase import ColorStatus, ThreadPurchase
from textile_kernel.models.settlement import ChequeDetail, SettlementTransaction

__all__ = [
    "Party",
    "PartyType",
    "Khata",
    "Obligation",
    "ObligationKind",
    "BillType",
    "Direction",
    "SettlementTransaction",
    "ChequeDetail",
    "InventoryStock",
    "InventoryMovement",
    "ProductType",
    "MovementType",
    "ReferenceType",
    "ThreadPurchase",
    "ColorStatus",
    "DyeingRun",
]
