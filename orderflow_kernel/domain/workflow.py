"""
Delivery order workflow rules (``orderflow_kernel.domain.workflow``).

Responsibility
--------------
The pure state machine for a delivery order: which department may perform
which operation from which status, what stage results, and which history
action is recorded.  Also the pure folds over history used for replay and
for progress display.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects and functions.  ZERO I/O.
No imports from ``db/``, ``models/``, ``services/``, ``selectors/``.

Invariants enforced
-------------------
* A ``WorkflowStage`` derives its location from its status; only
  ``rejected`` carries an explicit department.  An illegal
  (status, location) pair cannot be constructed.
* Every non-create transition requires the acting department to equal the
  stage's location.
* Terminal stages (``completed``, ``rejected``) admit no transition.
* Dispatch is admitted only from ``received_at_project_office``.
* ``replay`` over a DO's history reproduces its current stage.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Protocol

from orderflow_kernel.domain.values import (
    TERMINAL_STATUSES,
    WORKFLOW_DEPARTMENTS,
    Department,
    DoStatus,
    Operation,
    WorkflowAction,
)
from orderflow_kernel.exceptions import AlreadyTerminalError, ForbiddenDepartmentError

# Status -> location.  REJECTED is absent: its location is wherever it was
# rejected.  DISPATCHED_FROM_PROJECT_OFFICE has no in-transit location.
STATUS_LOCATIONS: MappingProxyType[DoStatus, Department] = MappingProxyType({
    DoStatus.CREATED: Department.PAPER_CREATOR,
    DoStatus.AT_PROJECT_OFFICE: Department.PROJECT_OFFICE,
    DoStatus.RECEIVED_AT_PROJECT_OFFICE: Department.PROJECT_OFFICE,
    DoStatus.DISPATCHED_FROM_PROJECT_OFFICE: Department.AREA_OFFICE,
    DoStatus.AT_AREA_OFFICE: Department.AREA_OFFICE,
    DoStatus.AT_ROAD_SALE: Department.ROAD_SALE,
    DoStatus.COMPLETED: Department.ROAD_SALE,
})

LEGAL_STATE_PAIRS: frozenset[tuple[str, str]] = frozenset(
    [(status.value, location.value) for status, location in STATUS_LOCATIONS.items()]
    + [(DoStatus.REJECTED.value, dept.value) for dept in WORKFLOW_DEPARTMENTS]
)


def location_for(status: DoStatus, rejected_at: Department | None = None) -> Department:
    """Location implied by a status (``rejected_at`` for REJECTED)."""
    if status == DoStatus.REJECTED:
        if rejected_at is None:
            raise ValueError("rejected status requires the rejecting department")
        return rejected_at
    return STATUS_LOCATIONS[status]


@dataclass(frozen=True)
class WorkflowStage:
    """Tagged workflow position: a status plus, for rejection, where it stopped.

    Contract: frozen; ``location`` is derived, never stored independently.
    """

    status: DoStatus
    rejected_at: Department | None = None

    def __post_init__(self) -> None:
        if self.status == DoStatus.REJECTED:
            if self.rejected_at not in WORKFLOW_DEPARTMENTS:
                raise ValueError(
                    f"rejected stage needs a workflow department, got {self.rejected_at!r}"
                )
        elif self.rejected_at is not None:
            raise ValueError(f"{self.status.value} stage cannot carry rejected_at")

    @property
    def location(self) -> Department:
        return location_for(self.status, self.rejected_at)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @classmethod
    def from_columns(cls, status: str, location: str) -> WorkflowStage:
        """Rebuild a stage from persisted columns, rejecting illegal pairs."""
        status = DoStatus(status)
        location = Department(location)
        if status == DoStatus.REJECTED:
            return cls(status, rejected_at=location)
        stage = cls(status)
        if stage.location != location:
            raise ValueError(
                f"illegal state pair: {status.value} at {location.value}"
            )
        return stage


INITIAL_STAGE = WorkflowStage(DoStatus.CREATED)


@dataclass(frozen=True)
class Transition:
    """A valid state transition in the delivery order workflow.

    Contract: frozen.  ``department`` is the only department that may fire
    it, and always equals the location of ``from_status``.
    """

    operation: Operation
    department: Department
    from_status: DoStatus
    to_status: DoStatus
    action: WorkflowAction


def next_step(department: Department) -> tuple[DoStatus, WorkflowAction] | None:
    """Approval target for a department, or None if it cannot approve."""
    if department == Department.PROJECT_OFFICE:
        return DoStatus.AT_AREA_OFFICE, WorkflowAction.APPROVED_AND_FORWARDED
    if department == Department.AREA_OFFICE:
        return DoStatus.AT_ROAD_SALE, WorkflowAction.APPROVED_AND_FORWARDED
    if department == Department.ROAD_SALE:
        return DoStatus.COMPLETED, WorkflowAction.COMPLETED
    return None


def _build_transitions() -> tuple[Transition, ...]:
    transitions = [
        Transition(
            Operation.CREATE,
            Department.PAPER_CREATOR,
            DoStatus.CREATED,
            DoStatus.AT_PROJECT_OFFICE,
            WorkflowAction.SUBMITTED_TO_PROJECT_OFFICE,
        ),
        Transition(
            Operation.RECEIVE,
            Department.PROJECT_OFFICE,
            DoStatus.AT_PROJECT_OFFICE,
            DoStatus.RECEIVED_AT_PROJECT_OFFICE,
            WorkflowAction.RECEIVED,
        ),
        Transition(
            Operation.DISPATCH,
            Department.PROJECT_OFFICE,
            DoStatus.RECEIVED_AT_PROJECT_OFFICE,
            DoStatus.AT_AREA_OFFICE,
            WorkflowAction.DISPATCHED_TO_AREA_OFFICE,
        ),
    ]
    for status, location in STATUS_LOCATIONS.items():
        if status in TERMINAL_STATUSES:
            continue
        step = next_step(location)
        if step is not None:
            transitions.append(
                Transition(Operation.APPROVE, location, status, step[0], step[1])
            )
    for status, location in STATUS_LOCATIONS.items():
        if status in TERMINAL_STATUSES:
            continue
        transitions.append(
            Transition(
                Operation.REJECT,
                location,
                status,
                DoStatus.REJECTED,
                WorkflowAction.REJECTED,
            )
        )
    return tuple(transitions)


# Every legal move.  Terminal statuses have no outgoing entry.
TRANSITIONS: tuple[Transition, ...] = _build_transitions()


@dataclass(frozen=True)
class TransitionPlan:
    """The validated outcome of a requested operation, before persistence."""

    transition: Transition
    from_stage: WorkflowStage
    to_stage: WorkflowStage

    @property
    def action(self) -> WorkflowAction:
        return self.transition.action

    @property
    def from_department(self) -> Department:
        return self.from_stage.location

    @property
    def to_department(self) -> Department:
        return self.to_stage.location


def plan_transition(
    stage: WorkflowStage,
    department: Department,
    operation: Operation,
    do_number: str = "",
) -> TransitionPlan:
    """
    Validate ``operation`` by ``department`` against ``stage``.

    Raises:
        AlreadyTerminalError: stage is completed or rejected.
        ForbiddenDepartmentError: department does not hold the DO, has no
            next step, or the status does not admit the operation.
    """
    if stage.is_terminal:
        raise AlreadyTerminalError(do_number, stage.status.value, operation.value)

    if department != stage.location:
        raise ForbiddenDepartmentError(
            department=department.value,
            action=operation.value,
            reason=f"delivery order is at {stage.location.value}",
            current_status=stage.status.value,
            current_location=stage.location.value,
        )

    for transition in TRANSITIONS:
        if (
            transition.operation == operation
            and transition.department == department
            and transition.from_status == stage.status
        ):
            if transition.to_status == DoStatus.REJECTED:
                to_stage = WorkflowStage(DoStatus.REJECTED, rejected_at=department)
            else:
                to_stage = WorkflowStage(transition.to_status)
            return TransitionPlan(transition, stage, to_stage)

    if operation == Operation.APPROVE and next_step(department) is None:
        reason = "department has no next step"
    else:
        reason = f"status {stage.status.value} does not admit {operation.value}"
    raise ForbiddenDepartmentError(
        department=department.value,
        action=operation.value,
        reason=reason,
        current_status=stage.status.value,
        current_location=stage.location.value,
    )


def allowed_actions(stage: WorkflowStage, department: Department) -> tuple[Operation, ...]:
    """Operations ``department`` may perform on a DO at ``stage`` right now."""
    if stage.is_terminal or department != stage.location:
        return ()
    found = {
        t.operation
        for t in TRANSITIONS
        if t.department == department
        and t.from_status == stage.status
        and t.operation != Operation.CREATE
    }
    return tuple(op for op in Operation if op in found)


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------


class HistoryEvent(Protocol):
    """Anything shaped like a workflow history entry."""

    action: WorkflowAction | str
    to_department: Department | str


_ARRIVAL_STATUS: MappingProxyType[Department, DoStatus] = MappingProxyType({
    Department.PROJECT_OFFICE: DoStatus.AT_PROJECT_OFFICE,
    Department.AREA_OFFICE: DoStatus.AT_AREA_OFFICE,
    Department.ROAD_SALE: DoStatus.AT_ROAD_SALE,
})


def apply_event(stage: WorkflowStage | None, event: HistoryEvent) -> WorkflowStage:
    """Fold one history event onto a stage (``None`` before the first event)."""
    action = WorkflowAction(event.action)
    to_department = Department(event.to_department)

    if stage is None and action not in (
        WorkflowAction.CREATED,
        WorkflowAction.SUBMITTED_TO_PROJECT_OFFICE,
    ):
        raise ValueError(f"history cannot start with {action.value}")
    if stage is not None and stage.is_terminal:
        raise ValueError(f"event {action.value} after terminal {stage.status.value}")

    if action == WorkflowAction.CREATED:
        result = INITIAL_STAGE
    elif action == WorkflowAction.SUBMITTED_TO_PROJECT_OFFICE:
        result = WorkflowStage(DoStatus.AT_PROJECT_OFFICE)
    elif action == WorkflowAction.RECEIVED:
        result = WorkflowStage(DoStatus.RECEIVED_AT_PROJECT_OFFICE)
    elif action == WorkflowAction.DISPATCHED_TO_AREA_OFFICE:
        result = WorkflowStage(DoStatus.AT_AREA_OFFICE)
    elif action == WorkflowAction.APPROVED_AND_FORWARDED:
        if to_department not in _ARRIVAL_STATUS:
            raise ValueError(f"cannot forward to {to_department.value}")
        result = WorkflowStage(_ARRIVAL_STATUS[to_department])
    elif action == WorkflowAction.COMPLETED:
        result = WorkflowStage(DoStatus.COMPLETED)
    else:
        result = WorkflowStage(DoStatus.REJECTED, rejected_at=to_department)

    if result.location != to_department:
        raise ValueError(
            f"{action.value} lands at {result.location.value}, "
            f"history says {to_department.value}"
        )
    return result


def replay(events: Iterable[HistoryEvent]) -> WorkflowStage:
    """Reconstruct the current stage from ordered history events."""
    stage: WorkflowStage | None = None
    for event in events:
        stage = apply_event(stage, event)
    if stage is None:
        raise ValueError("cannot replay an empty history")
    return stage


# ---------------------------------------------------------------------------
# Progress display
# ---------------------------------------------------------------------------


class StepState(str, Enum):
    COMPLETED = "completed"
    CURRENT = "current"
    PENDING = "pending"
    REJECTED = "rejected"


@dataclass(frozen=True)
class StepProgress:
    department: Department
    state: StepState


def stage_progress(stage: WorkflowStage) -> tuple[StepProgress, ...]:
    """Per-department step states for a progress indicator."""
    if stage.status == DoStatus.COMPLETED:
        return tuple(StepProgress(d, StepState.COMPLETED) for d in WORKFLOW_DEPARTMENTS)

    here = WORKFLOW_DEPARTMENTS.index(stage.location)
    at_here = StepState.REJECTED if stage.status == DoStatus.REJECTED else StepState.CURRENT
    steps = []
    for index, department in enumerate(WORKFLOW_DEPARTMENTS):
        if index < here:
            state = StepState.COMPLETED
        elif index == here:
            state = at_here
        else:
            state = StepState.PENDING
        steps.append(StepProgress(department, state))
    return tuple(steps)
