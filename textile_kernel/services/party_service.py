"""
Service layer for counterparties and khatas.

Parties are the vendors and customers obligations point at; khatas are the
books obligations are opened in.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from textile_kernel.exceptions import KhataNotFoundError, PartyNotFoundError, ValidationError
from textile_kernel.logging_config import get_logger
from textile_kernel.models.party import Khata, Party, PartyType
from textile_kernel.services.base import BaseService

logger = get_logger("services.party")


class PartyService(BaseService[Party]):
    """Create and look up parties and khatas."""

    def create_party(
        self,
        name: str,
        party_type: PartyType | str,
        *,
        actor_id: UUID,
        phone: str | None = None,
    ) -> Party:
        """
        Create a vendor or customer.

        Raises:
            ValidationError: Blank name or unknown party type.
        """
        actor_id = self._require_actor(actor_id)
        if not name or not name.strip():
            raise ValidationError("name", "party name is required")
        try:
            party_type = PartyType(party_type)
        except ValueError:
            raise ValidationError("party_type", f"unknown party type {party_type!r}") from None

        party = Party(
            name=name.strip(),
            party_type=party_type.value,
            phone=phone,
            created_by_id=actor_id,
        )
        self.session.add(party)
        self.session.flush()
        logger.info(
            "party_created",
            extra={"party_id": str(party.id), "party_type": party.party_type},
        )
        return party

    def create_khata(
        self,
        name: str,
        *,
        actor_id: UUID,
        description: str | None = None,
    ) -> Khata:
        actor_id = self._require_actor(actor_id)
        if not name or not name.strip():
            raise ValidationError("name", "khata name is required")
        khata = Khata(name=name.strip(), description=description, created_by_id=actor_id)
        self.session.add(khata)
        self.session.flush()
        logger.info("khata_created", extra={"khata_id": str(khata.id)})
        return khata

    def get_party(self, party_id: UUID) -> Party:
        party = self.session.get(Party, party_id)
        if party is None:
            raise PartyNotFoundError(str(party_id))
        return party

    def get_khata(self, khata_id: UUID) -> Khata:
        khata = self.session.get(Khata, khata_id)
        if khata is None:
            raise KhataNotFoundError(str(khata_id))
        return khata

    def find_party_by_name(self, name: str) -> Party | None:
        return self.session.execute(
            select(Party).where(Party.name == name.strip())
        ).scalars().first()
