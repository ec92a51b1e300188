"""
Module: orderflow_kernel.models.party
Responsibility: ORM persistence for the contractors a delivery order is
    issued to.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - party_number is unique (uq_party_number).
    - A party referenced by any delivery order cannot be deleted; the
      before_flush listener in db/immutability.py raises
      PartyReferencedError, and the delivery_orders FK backs it up.

Failure modes:
    - IntegrityError on duplicate party_number.
"""

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from orderflow_kernel.db.base import TrackedBase


class Party(TrackedBase):
    """
    Contractor that delivery orders are issued to.

    Guarantees:
        - party_number is globally unique and stable.
        - name is the display label shown on listings.
    """

    __tablename__ = "parties"

    __table_args__ = (
        UniqueConstraint("party_number", name="uq_party_number"),
        Index("idx_party_name", "name"),
    )

    # Business identifier, e.g. "P001"
    party_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Party {self.party_number}: {self.name}>"
