"""
Typed Exception Hierarchy for the Textile Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Request handlers translate kernel failures into wire responses.  They must be
able to do that by catching a type and reading attributes, never by parsing
message strings:

    try:
        recorder.record_transaction(obligation_id, amount, PaymentMode.CASH, actor_id=actor)
    except AmountExceedsRemainingError as e:
        return {"error": e.code, "limit": str(e.limit)}, e.http_status

Every exception carries:
  1. a CODE class attribute (machine-readable, API-safe)
  2. an HTTP_STATUS class attribute (the status a thin handler should answer)
  3. structured attributes (ids, limits, offending field names)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TextileKernelError (base)
    |
    +-- ValidationError                      400  malformed / missing input
    |
    +-- NotFoundError                        404
    |   +-- ObligationNotFoundError
    |   +-- TransactionNotFoundError
    |   +-- StockNotFoundError
    |   +-- DyeingRunNotFoundError
    |   +-- ThreadPurchaseNotFoundError
    |   +-- PartyNotFoundError
    |   +-- KhataNotFoundError
    |
    +-- OverLimitError                       400  carries the computed limit
    |   +-- AmountExceedsRemainingError
    |   +-- InvalidOutputQuantityError
    |   +-- InsufficientStockError
    |
    +-- InvalidTransitionError               409
    |   +-- InvalidChequeTransitionError
    |   +-- InvalidDyeingTransitionError
    |   +-- InventoryAlreadyPostedError
    |   +-- ObligationCancelledError
    |
    +-- ImmutabilityViolationError           409
    |
    +-- PersistenceError                     500  unexpected storage failure

===============================================================================
HANDLING PATTERNS
===============================================================================

1. All validation happens before any mutation, so a ValidationError,
   NotFoundError or OverLimitError leaves no side effects behind.

2. Anything raised inside a unit of work (session_scope) rolls the whole
   unit back.  The kernel never retries; PersistenceError is surfaced to the
   caller, who decides.

3. Double-posting guards make caller retries safe: a retried dyeing
   completion either posts once or raises InventoryAlreadyPostedError.
"""

from decimal import Decimal


class TextileKernelError(Exception):
    """
    Base exception for all textile kernel errors.

    All subclasses define a ``code`` class attribute for machine-readable
    identification and an ``http_status`` for the request handlers.
    """

    code: str = "TEXTILE_KERNEL_ERROR"
    http_status: int = 500


# Validation


class ValidationError(TextileKernelError):
    """Malformed or missing input; ``field`` names the offending input."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Not found


class NotFoundError(TextileKernelError):
    """Base exception for a referenced record that does not exist."""

    code: str = "NOT_FOUND"
    http_status: int = 404
    entity_type: str = "Record"

    def __init__(self, entity_id: str):
        self.entity_id = str(entity_id)
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class ObligationNotFoundError(NotFoundError):
    code: str = "OBLIGATION_NOT_FOUND"
    entity_type: str = "Obligation"


class TransactionNotFoundError(NotFoundError):
    code: str = "TRANSACTION_NOT_FOUND"
    entity_type: str = "Transaction"


class StockNotFoundError(NotFoundError):
    code: str = "STOCK_NOT_FOUND"
    entity_type: str = "Inventory stock"


class DyeingRunNotFoundError(NotFoundError):
    code: str = "DYEING_RUN_NOT_FOUND"
    entity_type: str = "Dyeing run"


class ThreadPurchaseNotFoundError(NotFoundError):
    code: str = "THREAD_PURCHASE_NOT_FOUND"
    entity_type: str = "Thread purchase"


class PartyNotFoundError(NotFoundError):
    code: str = "PARTY_NOT_FOUND"
    entity_type: str = "Party"


class KhataNotFoundError(NotFoundError):
    code: str = "KHATA_NOT_FOUND"
    entity_type: str = "Khata"


# Over limit


class OverLimitError(TextileKernelError):
    """
    A requested amount or quantity exceeds what is allowed.

    ``limit`` is the computed ceiling so clients can self-correct.
    """

    code: str = "OVER_LIMIT"
    http_status: int = 400

    def __init__(self, requested: Decimal, limit: Decimal, message: str):
        self.requested = requested
        self.limit = limit
        super().__init__(message)


class AmountExceedsRemainingError(OverLimitError):
    """Settlement amount is larger than the obligation's remaining amount."""

    code: str = "AMOUNT_EXCEEDS_REMAINING"

    def __init__(self, obligation_id: str, requested: Decimal, remaining: Decimal):
        self.obligation_id = str(obligation_id)
        super().__init__(
            requested,
            remaining,
            f"Transaction amount {requested} exceeds remaining amount "
            f"{remaining} on obligation {obligation_id}",
        )


class InvalidOutputQuantityError(OverLimitError):
    """Dyeing output is negative or larger than the run's input."""

    code: str = "INVALID_OUTPUT_QUANTITY"

    def __init__(self, run_id: str, requested: Decimal, input_quantity: Decimal):
        self.run_id = str(run_id)
        super().__init__(
            requested,
            input_quantity,
            f"Output quantity {requested} must be between 0 and the input "
            f"quantity {input_quantity} for dyeing run {run_id}",
        )


class InsufficientStockError(OverLimitError):
    """A consumption would take more than the stock currently holds."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, stock_id: str, requested: Decimal, available: Decimal):
        self.stock_id = str(stock_id)
        self.available = available
        super().__init__(
            requested,
            available,
            f"Requested {requested} from stock {stock_id} but only "
            f"{available} is available",
        )


# Invalid transitions


class InvalidTransitionError(TextileKernelError):
    """Base exception for illegal state changes."""

    code: str = "INVALID_TRANSITION"
    http_status: int = 409


class InvalidChequeTransitionError(InvalidTransitionError):
    code: str = "INVALID_CHEQUE_TRANSITION"

    def __init__(self, transaction_id: str, from_status: str, to_status: str):
        self.transaction_id = str(transaction_id)
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cheque on transaction {transaction_id} cannot move from "
            f"{from_status} to {to_status}"
        )


class InvalidDyeingTransitionError(InvalidTransitionError):
    code: str = "INVALID_DYEING_TRANSITION"

    def __init__(self, run_id: str, from_status: str, to_status: str):
        self.run_id = str(run_id)
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Dyeing run {run_id} cannot move from {from_status} to {to_status}"
        )


class InventoryAlreadyPostedError(InvalidTransitionError):
    """Finished goods of a dyeing run were already added to stock."""

    code: str = "INVENTORY_ALREADY_POSTED"

    def __init__(self, run_id: str):
        self.run_id = str(run_id)
        super().__init__(f"Output of dyeing run {run_id} is already posted to inventory")


class ObligationCancelledError(InvalidTransitionError):
    code: str = "OBLIGATION_CANCELLED"

    def __init__(self, obligation_id: str):
        self.obligation_id = str(obligation_id)
        super().__init__(f"Obligation {obligation_id} is cancelled")


# Immutability


class ImmutabilityViolationError(TextileKernelError):
    """An append-only or immutable field was about to be modified."""

    code: str = "IMMUTABILITY_VIOLATION"
    http_status: int = 409

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


# Persistence


class PersistenceError(TextileKernelError):
    """Unexpected storage failure.  Not retried by the kernel."""

    code: str = "PERSISTENCE_ERROR"
    http_status: int = 500

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Persistence failure during {operation}: {detail}")
