"""
Module: textile_kernel.models.party
Responsibility: ORM persistence for counterparties (vendors, customers) and
    khatas (the tenant books an obligation may belong to).
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Counterparty and tenant are first-class rows referenced by foreign key
      from obligations.  Nothing is encoded in free-text descriptions.

Failure modes:
    - IntegrityError on a duplicate khata name (uq_khata_name).
"""

from enum import Enum

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from textile_kernel.db.base import TrackedBase


class PartyType(str, Enum):
    """Classification of party types."""

    VENDOR = "VENDOR"
    CUSTOMER = "CUSTOMER"


class Party(TrackedBase):
    """
    External entity the business buys from or sells to.

    Guarantees:
        - party_type is set at creation and classifies the party permanently.
    """

    __tablename__ = "parties"

    __table_args__ = (
        Index("idx_party_type", "party_type"),
        Index("idx_party_name", "name"),
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    party_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    phone: Mapped[str | None] = mapped_column(
        String(30),
        nullable=True,
    )

    @property
    def is_vendor(self) -> bool:
        return self.party_type == PartyType.VENDOR.value

    def __repr__(self) -> str:
        return f"<Party {self.name} ({self.party_type})>"


class Khata(TrackedBase):
    """A ledger book.  Obligations opened in a khata carry its id as tenant_id."""

    __tablename__ = "khatas"

    __table_args__ = (UniqueConstraint("name", name="uq_khata_name"),)

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Khata {self.name}>"
