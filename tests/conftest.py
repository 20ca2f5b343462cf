"""
Pytest fixtures for the textile kernel test suite.

Provides:
- Database sessions isolated per test by transaction rollback
- Service and selector fixtures wired to a deterministic clock
- Small factories for parties, obligations, stock and purchases

Environment Variables:
- DATABASE_URL: SQLAlchemy URL of the test database.  If not set, an
  in-memory SQLite database is used.  Point it at PostgreSQL to run the
  suite (and the postgres-marked tests) against the live dialect.
"""

import json
import logging
import os
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from textile_kernel.db.engine import (
    SQLITE_MEMORY_URL,
    build_engine,
    create_tables,
    drop_tables,
)
from textile_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from textile_kernel.domain.clock import DeterministicClock
from textile_kernel.domain.dtos import ChequeInput
from textile_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from textile_kernel.models.obligation import BillType, ObligationKind
from textile_kernel.models.party import PartyType
from textile_kernel.selectors.inventory_selector import InventorySelector
from textile_kernel.selectors.obligation_selector import ObligationSelector
from textile_kernel.services.cheque_service import ChequeLifecycleManager
from textile_kernel.services.dyeing_service import DyeingService
from textile_kernel.services.inventory_guard import InventoryGuard
from textile_kernel.services.obligation_service import ObligationService
from textile_kernel.services.party_service import PartyService
from textile_kernel.services.purchase_service import ThreadPurchaseService
from textile_kernel.services.transaction_recorder import TransactionRecorder

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", SQLITE_MEMORY_URL)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture textile_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, recorder):
            recorder.record_transaction(...)
            logs = captured_logs()
            assert any(r["message"] == "settlement_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("textile_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Session-scoped DB infrastructure (engine + tables once per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = build_engine(get_database_url(), echo=False, pool_size=30, max_overflow=20)
    yield eng
    eng.dispose()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end.

    Immutability listeners are registered once and remain active.
    """
    drop_tables(db_engine)
    create_tables(db_engine)
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables(db_engine)


# =============================================================================
# Per-test session (rollback isolation)
# =============================================================================


@pytest.fixture
def session(db_engine, db_tables):
    """
    Session bound to an outer transaction that is rolled back after the test.

    Service code only flushes; anything a test commits lands in a savepoint
    of the outer transaction and disappears with it.
    """
    conn = db_engine.connect()
    outer = conn.begin()
    sess = Session(
        bind=conn,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )
    yield sess
    sess.close()
    if outer.is_active:
        outer.rollback()
    conn.close()


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


# =============================================================================
# Services and selectors
# =============================================================================


@pytest.fixture
def party_service(session, deterministic_clock):
    return PartyService(session, deterministic_clock)


@pytest.fixture
def obligation_service(session, deterministic_clock):
    return ObligationService(session, deterministic_clock)


@pytest.fixture
def recorder(session, deterministic_clock):
    return TransactionRecorder(session, deterministic_clock)


@pytest.fixture
def cheque_manager(session, deterministic_clock):
    return ChequeLifecycleManager(session, deterministic_clock)


@pytest.fixture
def guard(session, deterministic_clock):
    return InventoryGuard(session, deterministic_clock)


@pytest.fixture
def purchase_service(session, deterministic_clock):
    return ThreadPurchaseService(session, deterministic_clock)


@pytest.fixture
def dyeing_service(session, deterministic_clock):
    return DyeingService(session, deterministic_clock)


@pytest.fixture
def obligation_selector(session):
    return ObligationSelector(session)


@pytest.fixture
def inventory_selector(session):
    return InventorySelector(session)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def vendor(party_service, test_actor_id):
    return party_service.create_party("Sharma Threads", PartyType.VENDOR, actor_id=test_actor_id)


@pytest.fixture
def customer(party_service, test_actor_id):
    return party_service.create_party("Noor Fabrics", PartyType.CUSTOMER, actor_id=test_actor_id)


@pytest.fixture
def create_obligation(obligation_service, test_actor_id):
    """Factory for obligations; defaults to a PAYABLE of 1000.00."""

    def _create(
        total_amount="1000.00",
        kind=ObligationKind.PAYABLE,
        **kwargs,
    ):
        if kind == ObligationKind.BILL and "bill_type" not in kwargs:
            kwargs["bill_type"] = BillType.PURCHASE
        return obligation_service.create_obligation(
            kind, total_amount, actor_id=test_actor_id, **kwargs
        )

    return _create


@pytest.fixture
def record_cheque(recorder, test_actor_id):
    """Factory recording a CHEQUE settlement with a fresh cheque number."""
    counter = {"n": 0}

    def _record(obligation_id, amount, number=None, bank="HBL"):
        counter["n"] += 1
        return recorder.record_transaction(
            obligation_id,
            amount,
            "CHEQUE",
            actor_id=test_actor_id,
            cheque=ChequeInput(number=number or f"{counter['n']:06d}", bank=bank),
        )

    return _record


@pytest.fixture
def create_stock(guard, test_actor_id):
    """Factory for stock items registered through the InventoryGuard."""
    counter = {"n": 0}

    def _create(opening_quantity="100", item_code=None, **kwargs):
        counter["n"] += 1
        kwargs.setdefault("thread_type", "Cotton 40s")
        kwargs.setdefault("cost_per_unit", "300.00")
        return guard.register_stock(
            item_code or f"RAW-TEST-{counter['n']:03d}",
            kwargs.pop("description", "Raw test thread"),
            actor_id=test_actor_id,
            opening_quantity=opening_quantity,
            **kwargs,
        )

    return _create


@pytest.fixture
def received_purchase(purchase_service, vendor, test_actor_id, guard):
    """Factory: a thread purchase received into the given stock item."""

    def _create(stock, quantity="50", unit_price="300.00", thread_type="Cotton 40s"):
        purchase = purchase_service.record_purchase(
            vendor.id, thread_type, quantity, unit_price, actor_id=test_actor_id
        )
        purchase_service.receive_purchase(purchase.id, stock.id, actor_id=test_actor_id, guard=guard)
        return purchase

    return _create
