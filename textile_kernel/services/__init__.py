"""Services for the textile kernel (write side)."""

from textile_kernel.services.cheque_service import ChequeLifecycleManager
from textile_kernel.services.dyeing_service import DyeingService
from textile_kernel.services.fixture_loader import FixtureLoader
from textile_kernel.services.inventory_guard import InventoryGuard
from textile_kernel.services.obligation_service import ObligationService
from textile_kernel.services.party_service import PartyService
from textile_kernel.services.purchase_service import ThreadPurchaseService
from textile_kernel.services.transaction_recorder import TransactionRecorder

__all__ = [
    "ChequeLifecycleManager",
    "DyeingService",
    "FixtureLoader",
    "InventoryGuard",
    "ObligationService",
    "PartyService",
    "ThreadPurchaseService",
    "TransactionRecorder",
]
