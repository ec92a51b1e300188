"""
Pure domain layer.

Vocabulary, the workflow state machine, DTOs and the clock abstraction,
with NO dependencies on the ORM, the database or I/O (SystemClock aside).
"""

from orderflow_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SequentialClock,
    SystemClock,
)
from orderflow_kernel.domain.dtos import (
    DashboardStats,
    DeliveryOrderDetail,
    DeliveryOrderDraft,
    DeliveryOrderInfo,
    HistoryEntryInfo,
    PartyInfo,
    TransitionResult,
    UserInfo,
)
from orderflow_kernel.domain.values import (
    TERMINAL_STATUSES,
    WORKFLOW_DEPARTMENTS,
    Department,
    DoStatus,
    Operation,
    WorkflowAction,
)
from orderflow_kernel.domain.workflow import (
    INITIAL_STAGE,
    LEGAL_STATE_PAIRS,
    TRANSITIONS,
    StepProgress,
    StepState,
    Transition,
    TransitionPlan,
    WorkflowStage,
    allowed_actions,
    location_for,
    next_step,
    plan_transition,
    replay,
    stage_progress,
)

__all__ = [
    # Clock
    "Clock",
    "DeterministicClock",
    "SequentialClock",
    "SystemClock",
    # Vocabulary
    "Department",
    "DoStatus",
    "Operation",
    "WorkflowAction",
    "TERMINAL_STATUSES",
    "WORKFLOW_DEPARTMENTS",
    # State machine
    "INITIAL_STAGE",
    "LEGAL_STATE_PAIRS",
    "TRANSITIONS",
    "StepProgress",
    "StepState",
    "Transition",
    "TransitionPlan",
    "WorkflowStage",
    "allowed_actions",
    "location_for",
    "next_step",
    "plan_transition",
    "replay",
    "stage_progress",
    # DTOs
    "DashboardStats",
    "DeliveryOrderDetail",
    "DeliveryOrderDraft",
    "DeliveryOrderInfo",
    "HistoryEntryInfo",
    "PartyInfo",
    "TransitionResult",
    "UserInfo",
]
