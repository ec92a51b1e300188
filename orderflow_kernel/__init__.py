"""
OrderFlow Kernel

Delivery-order workflow tracking with:
- A fixed department-to-department state machine
- Append-only transition history
- Optimistic, all-or-nothing transitions
- Department-scoped read projections
"""

__version__ = "0.1.0"
