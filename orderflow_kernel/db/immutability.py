"""
ORM-level append-only and engine-only write enforcement.

===============================================================================
WHAT IS PROTECTED
===============================================================================

Entity                | Rule                                        | Error
----------------------|---------------------------------------------|---------------------------
WorkflowHistoryEntry  | ALWAYS immutable, never deleted             | ImmutabilityViolationError
DeliveryOrder         | state columns + do_number not assignable    | ImmutabilityViolationError
DeliveryOrder         | never deleted                               | ImmutabilityViolationError
Party                 | not deletable while any DO references it    | PartyReferencedError

The workflow engine moves a DO by a conditional ``UPDATE ... WHERE
current_status = :observed AND version = :observed`` statement.  That path
does not go through the unit of work, so the mapper ``before_update``
listener only ever sees attribute edits made by other code.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_flush]   --> _check_party_deletion_before_flush() --> PartyReferencedError
         |
         v
    [before_update]  --> _check_*_immutability() -----------> ImmutabilityViolationError
    [before_delete]  --> _check_*_delete() -----------------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

ORM-enabled bulk statements (``session.execute(update(WorkflowHistoryEntry))``)
skip mapper events, so ``do_orm_execute`` refuses bulk UPDATE/DELETE against
the ledger and bulk DELETE against delivery orders.

===============================================================================
USAGE
===============================================================================

    from orderflow_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that must bypass the rules call ``unregister_immutability_listeners()``
and re-register afterwards.
"""

from sqlalchemy import event, func, inspect, select
from sqlalchemy.orm import Session

from orderflow_kernel.exceptions import ImmutabilityViolationError, PartyReferencedError
from orderflow_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Columns only the workflow engine may move
_ENGINE_OWNED_FIELDS = ("do_number", "current_status", "current_location", "version")


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **fields):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **fields,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_party_deletion_before_flush(session, flush_context, instances):
    """
    Refuse to delete a party that delivery orders still reference.

    Runs in SessionEvents.before_flush, before the flush plan is fixed;
    mapper-level before_delete fires too late to stop the DELETE cleanly.
    """
    from orderflow_kernel.models.delivery_order import DeliveryOrder
    from orderflow_kernel.models.party import Party

    for obj in list(session.deleted):
        if not isinstance(obj, Party):
            continue

        with session.no_autoflush:
            count = session.execute(
                select(func.count(DeliveryOrder.id)).where(
                    DeliveryOrder.party_id == obj.id
                )
            ).scalar_one()

        if count:
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "Party",
                    "entity_id": str(obj.id),
                    "operation": "DELETE",
                    "reference_count": count,
                },
            )
            raise PartyReferencedError(party_id=str(obj.id), reference_count=count)


def _check_history_entry_immutability(mapper, connection, target):
    """History entries are append-only: no field may ever change."""
    raise _blocked(
        "WorkflowHistoryEntry",
        target.id,
        "UPDATE",
        "Workflow history entries are append-only",
    )


def _check_history_entry_delete(mapper, connection, target):
    raise _blocked(
        "WorkflowHistoryEntry",
        target.id,
        "DELETE",
        "Workflow history entries cannot be deleted",
    )


def _check_delivery_order_immutability(mapper, connection, target):
    """Refuse ORM writes to engine-owned DO columns."""
    insp = inspect(target)
    for key in _ENGINE_OWNED_FIELDS:
        if insp.attrs[key].history.has_changes():
            raise _blocked(
                "DeliveryOrder",
                target.id,
                "UPDATE",
                f"Field '{key}' is written only by the workflow engine",
                field=key,
            )


def _check_delivery_order_delete(mapper, connection, target):
    raise _blocked(
        "DeliveryOrder",
        target.id,
        "DELETE",
        "Delivery orders cannot be deleted",
    )


def _check_bulk_statements(orm_execute_state):
    """Refuse ORM bulk statements that would rewrite the ledger."""
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return

    from orderflow_kernel.models.delivery_order import DeliveryOrder
    from orderflow_kernel.models.workflow_history import WorkflowHistoryEntry

    operation = "UPDATE" if orm_execute_state.is_update else "DELETE"
    for mapper in orm_execute_state.all_mappers:
        if mapper.class_ is WorkflowHistoryEntry:
            raise _blocked(
                "WorkflowHistoryEntry",
                "*",
                f"BULK {operation}",
                "Workflow history entries are append-only",
            )
        if mapper.class_ is DeliveryOrder and orm_execute_state.is_delete:
            raise _blocked(
                "DeliveryOrder",
                "*",
                "BULK DELETE",
                "Delivery orders cannot be deleted",
            )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call after models are importable and before any database work.
    Registering twice is harmless.
    """
    from orderflow_kernel.models.delivery_order import DeliveryOrder
    from orderflow_kernel.models.workflow_history import WorkflowHistoryEntry

    listeners = (
        (Session, "before_flush", _check_party_deletion_before_flush),
        (Session, "do_orm_execute", _check_bulk_statements),
        (WorkflowHistoryEntry, "before_update", _check_history_entry_immutability),
        (WorkflowHistoryEntry, "before_delete", _check_history_entry_delete),
        (DeliveryOrder, "before_update", _check_delivery_order_immutability),
        (DeliveryOrder, "before_delete", _check_delivery_order_delete),
    )
    for target, event_name, listener_fn in listeners:
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)

    logger.debug("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that tamper with the ledger.
    """
    from orderflow_kernel.models.delivery_order import DeliveryOrder
    from orderflow_kernel.models.workflow_history import WorkflowHistoryEntry

    _safe_remove_listener(Session, "before_flush", _check_party_deletion_before_flush)
    _safe_remove_listener(Session, "do_orm_execute", _check_bulk_statements)
    _safe_remove_listener(
        WorkflowHistoryEntry, "before_update", _check_history_entry_immutability
    )
    _safe_remove_listener(
        WorkflowHistoryEntry, "before_delete", _check_history_entry_delete
    )
    _safe_remove_listener(
        DeliveryOrder, "before_update", _check_delivery_order_immutability
    )
    _safe_remove_listener(DeliveryOrder, "before_delete", _check_delivery_order_delete)
