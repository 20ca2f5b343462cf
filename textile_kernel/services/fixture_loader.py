"""
Fixture Loader - seeds a store from a parsed YAML fixture.

Every record goes through the same services production code uses, so
seeded stock has opening movements and seeded settlements move their
obligations exactly as live ones do.

Fixture shape (all sections optional)::

    actor_id: 00000000-0000-0000-0000-000000000001
    parties:
      - {key: sharma, name: Sharma Threads, party_type: VENDOR}
    khatas:
      - {key: main, name: Main Khata}
    stock:
      - {key: raw_cotton, item_code: RAW-COTTON-40, description: ..., quantity: 500}
    thread_purchases:
      - {key: lot1, vendor: sharma, thread_type: Cotton 40s, quantity: 200,
         unit_price: 310, receive_into: raw_cotton}
    obligations:
      - key: bill_1
        kind: BILL
        bill_type: PURCHASE
        total_amount: "62000.00"
        counterparty: sharma
        tenant: main
        settlements:
          - {amount: "20000.00", payment_mode: CHEQUE,
             cheque: {number: "004512", bank: HBL}}

Keys are local to the fixture; ``load()`` returns them mapped to row ids.
"""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from textile_kernel.domain.clock import Clock
from textile_kernel.domain.dtos import ChequeInput
from textile_kernel.exceptions import ValidationError
from textile_kernel.services.inventory_guard import InventoryGuard
from textile_kernel.services.obligation_service import ObligationService
from textile_kernel.services.party_service import PartyService
from textile_kernel.services.purchase_service import ThreadPurchaseService
from textile_kernel.services.transaction_recorder import TransactionRecorder

FIXTURE_ACTOR_ID = UUID("00000000-0000-0000-0000-0000000f1a7e")


class FixtureLoader:
    """Loads one fixture document inside the caller's unit of work."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._parties = PartyService(session, clock)
        self._guard = InventoryGuard(session, clock)
        self._purchases = ThreadPurchaseService(session, clock)
        self._obligations = ObligationService(session, clock)
        self._recorder = TransactionRecorder(session, clock)
        self._keys: dict[str, UUID] = {}

    def load(self, data: dict[str, Any]) -> dict[str, UUID]:
        """
        Load every section of ``data``.

        Returns:
            Fixture key -> created row id.

        Raises:
            ValidationError: Unknown or duplicate key reference, or any
                validation failure raised by the services.
        """
        actor_id = UUID(str(data["actor_id"])) if data.get("actor_id") else FIXTURE_ACTOR_ID

        for item in data.get("parties") or []:
            party = self._parties.create_party(
                item["name"], item["party_type"], actor_id=actor_id, phone=item.get("phone")
            )
            self._remember(item, party.id)

        for item in data.get("khatas") or []:
            khata = self._parties.create_khata(
                item["name"], actor_id=actor_id, description=item.get("description")
            )
            self._remember(item, khata.id)

        for item in data.get("stock") or []:
            stock = self._guard.register_stock(
                item["item_code"],
                item.get("description", item["item_code"]),
                actor_id=actor_id,
                product_type=item.get("product_type", "THREAD"),
                unit_of_measure=item.get("unit_of_measure", "KG"),
                thread_type=item.get("thread_type"),
                color_name=item.get("color_name"),
                color_code=item.get("color_code"),
                opening_quantity=item.get("quantity"),
                min_stock_level=item.get("min_stock_level", 0),
                cost_per_unit=item.get("cost_per_unit", 0),
                sale_price=item.get("sale_price"),
                location=item.get("location"),
            )
            self._remember(item, stock.id)

        for item in data.get("thread_purchases") or []:
            purchase = self._purchases.record_purchase(
                self._ref(item["vendor"]),
                item["thread_type"],
                item["quantity"],
                item["unit_price"],
                actor_id=actor_id,
                unit_of_measure=item.get("unit_of_measure", "KG"),
            )
            if item.get("receive_into"):
                self._purchases.receive_purchase(
                    purchase.id,
                    self._ref(item["receive_into"]),
                    actor_id=actor_id,
                    guard=self._guard,
                )
            self._remember(item, purchase.id)

        for item in data.get("obligations") or []:
            obligation = self._obligations.create_obligation(
                item["kind"],
                item["total_amount"],
                actor_id=actor_id,
                bill_type=item.get("bill_type"),
                reference=item.get("reference"),
                due_date=item.get("due_date"),
                counterparty_id=self._ref(item["counterparty"]) if item.get("counterparty") else None,
                tenant_id=self._ref(item["tenant"]) if item.get("tenant") else None,
                description=item.get("description"),
            )
            self._remember(item, obligation.id)
            for settlement in item.get("settlements") or []:
                cheque = settlement.get("cheque")
                txn = self._recorder.record_transaction(
                    obligation.id,
                    settlement["amount"],
                    settlement["payment_mode"],
                    actor_id=actor_id,
                    cheque=ChequeInput(**cheque) if cheque else None,
                    reference_number=settlement.get("reference_number"),
                    notes=settlement.get("notes"),
                )
                self._remember(settlement, txn.id)

        return dict(self._keys)

    def _remember(self, item: dict[str, Any], row_id: UUID) -> None:
        key = item.get("key")
        if key is None:
            return
        if key in self._keys:
            raise ValidationError("key", f"duplicate fixture key {key!r}")
        self._keys[key] = row_id

    def _ref(self, key: str) -> UUID:
        try:
            return self._keys[key]
        except KeyError:
            raise ValidationError("key", f"unknown fixture key {key!r}") from None
