"""
Values -- status vocabularies shared by the domain, models and services.

Responsibility:
    Closed tag sets for settlement state, cheque state and dyeing state.
    Persisted as their ``.value`` strings.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Imported by models/ and services/.
"""

from enum import Enum


class ObligationStatus(str, Enum):
    """Settlement status of an obligation.

    Contract: PENDING, PARTIAL and COMPLETED are derived from amounts only
    (see money.derive_status).  CANCELLED is an explicit, absorbing
    administrative state.
    """

    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentMode(str, Enum):
    CASH = "CASH"
    CHEQUE = "CHEQUE"
    ONLINE = "ONLINE"


class ChequeStatus(str, Enum):
    """Cheque lifecycle.  CLEARED, BOUNCED and REPLACED are terminal."""

    PENDING = "PENDING"
    CLEARED = "CLEARED"
    BOUNCED = "BOUNCED"
    REPLACED = "REPLACED"


class DyeingResultStatus(str, Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class InventoryPostingStatus(str, Enum):
    """Whether a dyeing run's output has been added to stock."""

    PENDING = "PENDING"
    ADDED = "ADDED"
