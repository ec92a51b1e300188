"""
Data transfer objects returned by services and selectors.

All DTOs are frozen dataclasses.  ORM rows never leave the service or
selector that loaded them; callers only ever see these values.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from orderflow_kernel.domain.values import Department, DoStatus, Operation, WorkflowAction
from orderflow_kernel.domain.workflow import StepProgress, WorkflowStage, stage_progress


@dataclass(frozen=True)
class PartyInfo:
    id: UUID
    party_number: str
    name: str
    created_at: datetime | None = None


@dataclass(frozen=True)
class UserInfo:
    id: UUID
    username: str
    email: str
    department: Department
    is_active: bool
    created_at: datetime | None = None


@dataclass(frozen=True)
class DeliveryOrderDraft:
    """Caller-supplied fields for a new delivery order."""

    party_id: UUID
    authorized_person: str
    valid_from: datetime
    valid_until: datetime
    notes: str | None = None
    do_number: str | None = None  # None -> generated


@dataclass(frozen=True)
class DeliveryOrderInfo:
    """
    A delivery order as seen by callers.

    ``party_number``/``party_name``/``creator_username`` are filled by
    selectors that join them in; services leave them ``None``.
    """

    id: UUID
    do_number: str
    party_id: UUID
    authorized_person: str
    valid_from: datetime
    valid_until: datetime
    notes: str | None
    current_status: DoStatus
    current_location: Department
    version: int
    created_by_id: UUID
    created_at: datetime
    party_number: str | None = None
    party_name: str | None = None
    creator_username: str | None = None

    @property
    def stage(self) -> WorkflowStage:
        return WorkflowStage.from_columns(
            self.current_status.value, self.current_location.value
        )

    @property
    def is_terminal(self) -> bool:
        return self.stage.is_terminal


@dataclass(frozen=True)
class HistoryEntryInfo:
    id: UUID
    delivery_order_id: UUID
    seq: int
    from_department: Department | None
    to_department: Department
    action: WorkflowAction
    performed_by_id: UUID
    remarks: str | None
    performed_at: datetime
    performer_username: str | None = None
    performer_department: Department | None = None


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of one engine operation: the updated DO and its new ledger entry."""

    operation: Operation
    order: DeliveryOrderInfo
    entry: HistoryEntryInfo
    from_stage: WorkflowStage
    to_stage: WorkflowStage


@dataclass(frozen=True)
class DeliveryOrderDetail:
    """A DO together with its full ledger, oldest entry first."""

    order: DeliveryOrderInfo
    history: tuple[HistoryEntryInfo, ...]

    @property
    def progress(self) -> tuple[StepProgress, ...]:
        return stage_progress(self.order.stage)


@dataclass(frozen=True)
class DashboardStats:
    total: int
    in_progress: int
    completed: int
    pending: int
