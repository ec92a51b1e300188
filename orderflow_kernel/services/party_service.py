"""
PartyService -- contractor records referenced by delivery orders.

Responsibility:
    Create, look up, list and delete parties.  Deletion is refused while any
    delivery order references the party (the before_flush listener raises
    PartyReferencedError).

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - party_number is unique.
    - Only an active role_creator may create or delete parties.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from orderflow_kernel.domain.dtos import PartyInfo
from orderflow_kernel.domain.values import Department
from orderflow_kernel.exceptions import (
    DuplicatePartyNumberError,
    PartyNotFoundError,
    ValidationError,
)
from orderflow_kernel.logging_config import get_logger
from orderflow_kernel.models.party import Party
from orderflow_kernel.services.base import BaseService
from orderflow_kernel.services.user_service import UserService

logger = get_logger("services.party")


class PartyService(BaseService[Party]):
    """Service for managing parties."""

    def _to_dto(self, party: Party) -> PartyInfo:
        return PartyInfo(
            id=party.id,
            party_number=party.party_number,
            name=party.name,
            created_at=party.created_at,
        )

    def _get_by_id(self, party_id: UUID) -> Party:
        """Get party by ID, raising if not found."""
        party = self.session.get(Party, party_id)
        if party is None:
            raise PartyNotFoundError(str(party_id))
        return party

    def get_by_id(self, party_id: UUID) -> PartyInfo:
        """
        Get party by ID.

        Raises:
            PartyNotFoundError: If party doesn't exist.
        """
        return self._to_dto(self._get_by_id(party_id))

    def get_by_number(self, party_number: str) -> PartyInfo:
        """
        Get party by its business number (e.g. "P001").

        Raises:
            PartyNotFoundError: If party doesn't exist.
        """
        party = self.find_by_number(party_number)
        if party is None:
            raise PartyNotFoundError(party_number)
        return party

    def find_by_number(self, party_number: str) -> PartyInfo | None:
        stmt = select(Party).where(Party.party_number == party_number)
        party = self.session.execute(stmt).scalar_one_or_none()
        return self._to_dto(party) if party else None

    def list_parties(self) -> list[PartyInfo]:
        """All parties ordered by name."""
        stmt = select(Party).order_by(Party.name, Party.party_number)
        return [self._to_dto(p) for p in self.session.execute(stmt).scalars()]

    def create_party(
        self,
        party_number: str,
        name: str,
        actor_id: UUID,
        *,
        require_role: bool = True,
    ) -> PartyInfo:
        """
        Create a new party.

        Args:
            party_number: Unique identifier (e.g. "P001").
            name: Display name.
            actor_id: Acting user (must be an active role_creator).
            require_role: Seeding tooling passes False to create parties
                under the system actor.

        Raises:
            DuplicatePartyNumberError: If party_number is taken.
        """
        if require_role:
            UserService(self.session).require_actor(
                actor_id, "create_party", Department.ROLE_CREATOR
            )

        party_number = (party_number or "").strip()
        name = (name or "").strip()
        if not party_number:
            raise ValidationError("party_number", "must not be blank")
        if not name:
            raise ValidationError("name", "must not be blank")

        if self.find_by_number(party_number) is not None:
            raise DuplicatePartyNumberError(party_number)

        party = Party(party_number=party_number, name=name, created_by_id=actor_id)
        savepoint = self.session.begin_nested()
        try:
            self.session.add(party)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise DuplicatePartyNumberError(party_number)

        logger.info(
            "party_created",
            extra={"party_id": str(party.id), "party_number": party_number},
        )
        return self._to_dto(party)

    def delete_party(self, party_id: UUID, actor_id: UUID) -> None:
        """
        Delete an unreferenced party.

        Raises:
            PartyNotFoundError: If party doesn't exist.
            PartyReferencedError: If any delivery order references it.
        """
        UserService(self.session).require_actor(
            actor_id, "delete_party", Department.ROLE_CREATOR
        )
        party = self._get_by_id(party_id)
        savepoint = self.session.begin_nested()
        try:
            self.session.delete(party)
            self.session.flush()
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            raise
        logger.info("party_deleted", extra={"party_id": str(party_id)})
