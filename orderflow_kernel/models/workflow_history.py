"""
Module: orderflow_kernel.models.workflow_history
Responsibility: The append-only ledger of department-to-department moves
    for every delivery order.
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure domain vocabulary.

Invariants enforced:
    - Append-only: ORM listeners (db/immutability.py) raise
      ImmutabilityViolationError on any UPDATE or DELETE.
    - seq is globally unique and monotonic (uq_history_seq), allocated from
      the "workflow_history" counter; (performed_at, seq) is a total order.
    - action and department columns hold known vocabulary values.

Audit relevance:
    Replaying a DO's entries in (performed_at, seq) order reproduces its
    current status and location.
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

from orderflow_kernel.db.base import Base, UUIDString
from orderflow_kernel.domain.values import WORKFLOW_DEPARTMENTS, WorkflowAction

_ACTION_VALUES = ", ".join(f"'{a.value}'" for a in WorkflowAction)
_LOCATION_VALUES = ", ".join(f"'{d.value}'" for d in WORKFLOW_DEPARTMENTS)


class WorkflowHistoryEntry(Base):
    """
    One immutable ledger entry.

    ``from_department`` is NULL only for a ``created`` entry.
    """

    __tablename__ = "workflow_history"

    __table_args__ = (
        UniqueConstraint("seq", name="uq_history_seq"),
        CheckConstraint(f"action IN ({_ACTION_VALUES})", name="ck_history_action"),
        CheckConstraint(
            f"to_department IN ({_LOCATION_VALUES})",
            name="ck_history_to_department",
        ),
        Index("idx_history_order", "delivery_order_id", "performed_at", "seq"),
        Index("idx_history_from_department", "from_department", "action"),
    )

    delivery_order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("delivery_orders.id"),
        nullable=False,
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    from_department: Mapped[str | None] = mapped_column(String(30), nullable=True)

    to_department: Mapped[str] = mapped_column(String(30), nullable=False)

    action: Mapped[str] = mapped_column(String(40), nullable=False)

    performed_by_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )

    # Stored verbatim
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    performed_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<WorkflowHistoryEntry #{self.seq} {self.action}: "
            f"{self.from_department} -> {self.to_department}>"
        )
