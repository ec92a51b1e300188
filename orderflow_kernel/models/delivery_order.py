"""
Module: orderflow_kernel.models.delivery_order
Responsibility: ORM persistence for delivery orders -- the document that
    moves through the department workflow.
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure domain vocabulary/rules (values.py, workflow.py).

Invariants enforced:
    - do_number is unique (uq_do_number).
    - (current_status, current_location) is one of the legal workflow
      pairs (ck_do_state_pair).  The pair list is generated from
      domain.workflow.LEGAL_STATE_PAIRS so the table and the state machine
      cannot drift apart.
    - valid_until > valid_from (ck_do_validity_window).
    - current_status, current_location and do_number cannot be changed by
      attribute assignment; db/immutability.py refuses such flushes.  The
      workflow engine writes state through a conditional UPDATE that
      bypasses the ORM unit of work.
    - Rows are never deleted.

Failure modes:
    - IntegrityError on duplicate do_number or an illegal state pair.
    - ImmutabilityViolationError (from listeners) on ORM state edits.

Audit relevance:
    current_status/current_location are a materialised view of the
    workflow_history ledger.  ``version`` increases by one per transition
    and is the optimistic-concurrency token.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from orderflow_kernel.db.base import TrackedBase, UUIDString
from orderflow_kernel.domain.workflow import LEGAL_STATE_PAIRS

_STATE_PAIR_SQL = " OR ".join(
    f"(current_status = '{status}' AND current_location = '{location}')"
    for status, location in sorted(LEGAL_STATE_PAIRS)
)


class DeliveryOrder(TrackedBase):
    """
    A delivery order and its current workflow position.

    Contract:
        Business fields are written once at creation.  Only the workflow
        engine moves current_status/current_location/version, and only
        together with a history append.
    """

    __tablename__ = "delivery_orders"

    __table_args__ = (
        UniqueConstraint("do_number", name="uq_do_number"),
        CheckConstraint(_STATE_PAIR_SQL, name="ck_do_state_pair"),
        CheckConstraint("valid_until > valid_from", name="ck_do_validity_window"),
        Index("idx_do_location_status", "current_location", "current_status"),
        Index("idx_do_created_by", "created_by_id"),
        Index("idx_do_party", "party_id"),
    )

    do_number: Mapped[str] = mapped_column(String(50), nullable=False)

    party_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("parties.id"),
        nullable=False,
    )

    authorized_person: Mapped[str] = mapped_column(String(255), nullable=False)

    valid_from: Mapped[datetime] = mapped_column(nullable=False)

    valid_until: Mapped[datetime] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    current_status: Mapped[str] = mapped_column(String(40), nullable=False)

    current_location: Mapped[str] = mapped_column(String(30), nullable=False)

    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)

    # Creator must be a real user, unlike bootstrap rows on other tables
    created_by_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<DeliveryOrder {self.do_number}: "
            f"{self.current_status}@{self.current_location} v{self.version}>"
        )
