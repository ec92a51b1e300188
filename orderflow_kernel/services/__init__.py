"""Kernel services: the write side of the orderflow kernel."""

from orderflow_kernel.services.base import BaseService
from orderflow_kernel.services.delivery_order_service import (
    DeliveryOrderService,
    format_do_number,
)
from orderflow_kernel.services.party_service import PartyService
from orderflow_kernel.services.sequence_service import SequenceCounter, SequenceService
from orderflow_kernel.services.user_service import UserService
from orderflow_kernel.services.workflow_engine import WorkflowEngine

__all__ = [
    "BaseService",
    "DeliveryOrderService",
    "PartyService",
    "SequenceCounter",
    "SequenceService",
    "UserService",
    "WorkflowEngine",
    "format_do_number",
]
