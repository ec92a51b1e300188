"""
Immutability enforcement tests.

Verifies that:
- Workflow history entries cannot be updated or deleted through the ORM
- Bulk UPDATE/DELETE statements against the ledger are refused
- Engine-owned delivery order columns cannot be assigned directly
- Delivery orders cannot be deleted
- Non-workflow DO fields (notes) remain editable
- Violations are logged
"""

import pytest
from sqlalchemy import delete, select, update

from orderflow_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from orderflow_kernel.exceptions import ImmutabilityViolationError
from orderflow_kernel.models.delivery_order import DeliveryOrder
from orderflow_kernel.models.workflow_history import WorkflowHistoryEntry


def _entry(session, order):
    return session.execute(
        select(WorkflowHistoryEntry).where(
            WorkflowHistoryEntry.delivery_order_id == order.id
        )
    ).scalars().first()


def _row(session, order):
    return session.get(DeliveryOrder, order.id, populate_existing=True)


class TestHistoryEntryImmutability:
    def test_update_remarks_blocked(self, session, create_do):
        entry = _entry(session, create_do())
        entry.remarks = "rewritten"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "WorkflowHistoryEntry"

    def test_update_action_blocked(self, session, create_do):
        entry = _entry(session, create_do())
        entry.action = "completed"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_blocked(self, session, create_do):
        entry = _entry(session, create_do())
        session.delete(entry)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_bulk_update_blocked(self, session, create_do):
        create_do()
        with pytest.raises(ImmutabilityViolationError):
            session.execute(update(WorkflowHistoryEntry).values(remarks="bulk"))

    def test_bulk_delete_blocked(self, session, create_do):
        create_do()
        with pytest.raises(ImmutabilityViolationError):
            session.execute(delete(WorkflowHistoryEntry))

    def test_violation_logged(self, session, create_do, captured_logs):
        entry = _entry(session, create_do())
        entry.remarks = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

        blocked = [
            r for r in captured_logs() if r["message"] == "immutability_violation_blocked"
        ]
        assert blocked[-1]["entity_type"] == "WorkflowHistoryEntry"
        assert blocked[-1]["operation"] == "UPDATE"


class TestDeliveryOrderImmutability:
    @pytest.mark.parametrize(
        "field,value",
        [
            ("current_status", "completed"),
            ("current_location", "road_sale"),
            ("version", 99),
            ("do_number", "DO-2025-999"),
        ],
    )
    def test_engine_owned_fields_blocked(self, session, create_do, field, value):
        row = _row(session, create_do())
        setattr(row, field, value)

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert f"'{field}'" in exc_info.value.reason

    def test_notes_are_editable(self, session, create_do):
        order = create_do()
        row = _row(session, order)
        row.notes = "Gate pass attached"
        session.flush()

        assert _row(session, order).notes == "Gate pass attached"

    def test_delete_blocked(self, session, create_do):
        session.delete(_row(session, create_do()))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_bulk_delete_blocked(self, session, create_do):
        create_do()
        with pytest.raises(ImmutabilityViolationError):
            session.execute(delete(DeliveryOrder))


class TestListenerRegistration:
    def test_register_twice_is_harmless(self, session, create_do):
        register_immutability_listeners()
        entry = _entry(session, create_do())
        entry.remarks = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_unregistered_allows_tampering(self, session, create_do):
        order = create_do()
        unregister_immutability_listeners()
        try:
            session.execute(
                update(WorkflowHistoryEntry)
                .where(WorkflowHistoryEntry.delivery_order_id == order.id)
                .values(remarks="tampered")
            )
            assert _entry(session, order).remarks == "tampered"
        finally:
            register_immutability_listeners()
