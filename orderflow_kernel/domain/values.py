"""
Workflow vocabulary (``orderflow_kernel.domain.values``).

Departments, delivery-order statuses, history action tags and engine
operation names.  Pure enums, ZERO I/O.  Models import these so that the
persisted column values and the domain rules share one vocabulary.
"""

from enum import Enum


class Department(str, Enum):
    """Actor group and, for the first four members, a workflow location."""

    PAPER_CREATOR = "paper_creator"
    PROJECT_OFFICE = "project_office"
    AREA_OFFICE = "area_office"
    ROAD_SALE = "road_sale"
    ROLE_CREATOR = "role_creator"  # administrative, never holds a DO


# Workflow order; excludes ROLE_CREATOR.
WORKFLOW_DEPARTMENTS: tuple[Department, ...] = (
    Department.PAPER_CREATOR,
    Department.PROJECT_OFFICE,
    Department.AREA_OFFICE,
    Department.ROAD_SALE,
)


class DoStatus(str, Enum):
    """Delivery order lifecycle status."""

    CREATED = "created"
    AT_PROJECT_OFFICE = "at_project_office"
    RECEIVED_AT_PROJECT_OFFICE = "received_at_project_office"
    DISPATCHED_FROM_PROJECT_OFFICE = "dispatched_from_project_office"
    AT_AREA_OFFICE = "at_area_office"
    AT_ROAD_SALE = "at_road_sale"
    COMPLETED = "completed"
    REJECTED = "rejected"


TERMINAL_STATUSES: frozenset[DoStatus] = frozenset(
    {DoStatus.COMPLETED, DoStatus.REJECTED}
)


class WorkflowAction(str, Enum):
    """Action tag recorded on a workflow history entry."""

    CREATED = "created"
    SUBMITTED_TO_PROJECT_OFFICE = "submitted_to_project_office"
    RECEIVED = "received"
    DISPATCHED_TO_AREA_OFFICE = "dispatched_to_area_office"
    APPROVED_AND_FORWARDED = "approved_and_forwarded"
    REJECTED = "rejected"
    COMPLETED = "completed"


class Operation(str, Enum):
    """Engine operation a caller may request."""

    CREATE = "create"
    RECEIVE = "receive"
    DISPATCH = "dispatch"
    APPROVE = "approve"
    REJECT = "reject"
