"""ORM models for the orderflow kernel."""

from orderflow_kernel.models.delivery_order import DeliveryOrder
from orderflow_kernel.models.party import Party
from orderflow_kernel.models.user import User
from orderflow_kernel.models.workflow_history import WorkflowHistoryEntry

__all__ = [
    "DeliveryOrder",
    "Party",
    "User",
    "WorkflowHistoryEntry",
]
