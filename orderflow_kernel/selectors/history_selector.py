"""
Module: orderflow_kernel.selectors.history_selector
Responsibility: Read access to the workflow history ledger, plus replay of
    a DO's ledger into its workflow stage and comparison against the stored
    state columns.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Entries are returned in (performed_at, seq) order, which is total.
    - verify() is the check that the state columns are a faithful
      materialisation of the ledger.
"""

from uuid import UUID

from sqlalchemy import func, select

from orderflow_kernel.domain.dtos import HistoryEntryInfo
from orderflow_kernel.domain.values import Department, WorkflowAction
from orderflow_kernel.domain.workflow import WorkflowStage, replay
from orderflow_kernel.exceptions import DeliveryOrderNotFoundError
from orderflow_kernel.logging_config import get_logger
from orderflow_kernel.models.delivery_order import DeliveryOrder
from orderflow_kernel.models.user import User
from orderflow_kernel.models.workflow_history import WorkflowHistoryEntry
from orderflow_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.history")


class HistorySelector(BaseSelector[WorkflowHistoryEntry]):
    """Queries over the workflow history ledger."""

    def entries_for(self, order_id: UUID) -> tuple[HistoryEntryInfo, ...]:
        """All ledger entries for a DO, oldest first, with performer details."""
        stmt = (
            select(WorkflowHistoryEntry, User.username, User.department)
            .join(User, WorkflowHistoryEntry.performed_by_id == User.id)
            .where(WorkflowHistoryEntry.delivery_order_id == order_id)
            .order_by(WorkflowHistoryEntry.performed_at, WorkflowHistoryEntry.seq)
        )
        return tuple(
            HistoryEntryInfo(
                id=entry.id,
                delivery_order_id=entry.delivery_order_id,
                seq=entry.seq,
                from_department=(
                    Department(entry.from_department) if entry.from_department else None
                ),
                to_department=Department(entry.to_department),
                action=WorkflowAction(entry.action),
                performed_by_id=entry.performed_by_id,
                remarks=entry.remarks,
                performed_at=entry.performed_at,
                performer_username=username,
                performer_department=Department(department),
            )
            for entry, username, department in self.session.execute(stmt)
        )

    def count_for(self, order_id: UUID) -> int:
        return self.session.execute(
            select(func.count(WorkflowHistoryEntry.id)).where(
                WorkflowHistoryEntry.delivery_order_id == order_id
            )
        ).scalar_one()

    def replay_stage(self, order_id: UUID) -> WorkflowStage:
        """
        Fold the DO's ledger into a stage.

        Raises:
            ValueError: The ledger is empty or inconsistent.
        """
        return replay(self.entries_for(order_id))

    def verify(self, order_id: UUID) -> bool:
        """
        True if replaying the ledger reproduces the stored stage.

        Raises:
            DeliveryOrderNotFoundError: If the DO doesn't exist.
        """
        row = self.session.execute(
            select(
                DeliveryOrder.do_number,
                DeliveryOrder.current_status,
                DeliveryOrder.current_location,
            ).where(DeliveryOrder.id == order_id)
        ).one_or_none()
        if row is None:
            raise DeliveryOrderNotFoundError(str(order_id))

        stored = WorkflowStage.from_columns(row.current_status, row.current_location)
        try:
            replayed = self.replay_stage(order_id)
        except ValueError:
            logger.warning(
                "history_replay_failed",
                extra={"do_id": str(order_id), "do_number": row.do_number},
                exc_info=True,
            )
            return False

        if replayed != stored:
            logger.warning(
                "history_replay_mismatch",
                extra={
                    "do_id": str(order_id),
                    "do_number": row.do_number,
                    "stored_status": stored.status.value,
                    "replayed_status": replayed.status.value,
                },
            )
            return False
        return True
