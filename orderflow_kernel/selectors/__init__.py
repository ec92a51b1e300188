"""Read-only selectors for the orderflow kernel."""

from orderflow_kernel.selectors.base import BaseSelector
from orderflow_kernel.selectors.delivery_order_selector import (
    PROJECT_OFFICE_STAGES,
    DeliveryOrderSelector,
)
from orderflow_kernel.selectors.history_selector import HistorySelector

__all__ = [
    "BaseSelector",
    "DeliveryOrderSelector",
    "HistorySelector",
    "PROJECT_OFFICE_STAGES",
]
