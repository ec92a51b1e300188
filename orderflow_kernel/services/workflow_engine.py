"""
WorkflowEngine -- the imperative shell around the delivery order state machine.

Responsibility:
    Executes create/receive/dispatch/approve/reject for an acting user.
    Each operation reads the DO fresh, validates the move with the pure
    rules in ``domain.workflow``, then writes the new state (conditioned on
    the observed status and version) and appends exactly one history entry
    inside a single savepoint.

Architecture position:
    Kernel > Services -- imperative shell.  The only writer of delivery
    order state columns and of workflow history rows.

Invariants enforced:
    - State change and history append land together or not at all.
    - No workflow state is cached between calls.
    - Check order: DO exists -> actor exists -> DO not terminal -> actor
      active -> actor department holds the DO -> status admits operation.
    - Refused operations write nothing.
    - Writes are never retried here; StorageFailureError goes to the caller.

Failure modes:
    - DeliveryOrderNotFoundError, UserNotFoundError, AlreadyTerminalError,
      UserInactiveError, ForbiddenDepartmentError, ValidationError,
      DuplicateDoNumberError, PartyNotFoundError.
    - OptimisticLockError when a concurrent writer moved the DO first.
    - StorageFailureError wrapping any database error, on the reads as
      well as the write.

Audit relevance:
    Every applied transition logs ``workflow_transition`` at INFO; every
    refused one logs ``workflow_transition_refused`` at WARNING.
"""

from datetime import datetime
from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from orderflow_kernel.domain.clock import Clock, SystemClock
from orderflow_kernel.domain.dtos import (
    DeliveryOrderDetail,
    DeliveryOrderDraft,
    DeliveryOrderInfo,
    HistoryEntryInfo,
    TransitionResult,
    UserInfo,
)
from orderflow_kernel.domain.values import Department, Operation
from orderflow_kernel.domain.workflow import (
    INITIAL_STAGE,
    TransitionPlan,
    plan_transition,
)
from orderflow_kernel.exceptions import (
    AlreadyTerminalError,
    AuthorizationError,
    StorageFailureError,
    UserInactiveError,
)
from orderflow_kernel.logging_config import LogContext, get_logger
from orderflow_kernel.models.workflow_history import WorkflowHistoryEntry
from orderflow_kernel.selectors.delivery_order_selector import DeliveryOrderSelector
from orderflow_kernel.services.delivery_order_service import (
    DEFAULT_DO_PREFIX,
    DEFAULT_PAD_WIDTH,
    DeliveryOrderService,
)
from orderflow_kernel.services.sequence_service import SequenceService
from orderflow_kernel.services.user_service import UserService

logger = get_logger("services.workflow_engine")


class WorkflowEngine:
    """
    Delivery order workflow operations.

    Contract:
        Accepts a caller-owned Session and flushes, never commits.  Commit
        after a successful call (``session_scope()`` does this).

    Args:
        session: SQLAlchemy session.
        clock: Time source for history timestamps and DO-number years.
        id_factory: UUID source for new rows (defaults to uuid4).
        config: Optional object with ``do_number.prefix`` and
            ``do_number.pad_width`` (e.g. an ``OrderflowConfig``).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        id_factory: Callable[[], UUID] | None = None,
        config=None,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self._id_factory = id_factory or uuid4

        prefix, pad_width = DEFAULT_DO_PREFIX, DEFAULT_PAD_WIDTH
        if config is not None:
            prefix = config.do_number.prefix
            pad_width = config.do_number.pad_width

        self._orders = DeliveryOrderService(
            session,
            clock=self._clock,
            id_factory=self._id_factory,
            do_number_prefix=prefix,
            pad_width=pad_width,
        )
        self._users = UserService(session)
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create(
        self,
        actor_id: UUID,
        party_id: UUID,
        authorized_person: str,
        valid_from: datetime,
        valid_until: datetime,
        notes: str | None = None,
        do_number: str | None = None,
    ) -> DeliveryOrderInfo:
        """
        Create a DO and submit it to the project office.

        The DO is inserted at created/paper_creator and moved on to
        at_project_office in the same savepoint, with one history entry
        ``submitted_to_project_office``.

        Raises:
            UserNotFoundError, UserInactiveError, ForbiddenDepartmentError,
            ValidationError, PartyNotFoundError, DuplicateDoNumberError,
            StorageFailureError.
        """
        draft = DeliveryOrderDraft(
            party_id=party_id,
            authorized_person=authorized_person,
            valid_from=valid_from,
            valid_until=valid_until,
            notes=notes or None,
            do_number=do_number,
        )
        with self._operation(Operation.CREATE, actor_id):
            try:
                return self._create(actor_id, draft)
            except DBAPIError as exc:
                raise self._storage_failure(Operation.CREATE, exc) from exc

    def receive(
        self, do_id: UUID, actor_id: UUID, remarks: str | None = None
    ) -> TransitionResult:
        """Project office acknowledges physical receipt."""
        return self._transition(Operation.RECEIVE, do_id, actor_id, remarks)

    def dispatch(
        self, do_id: UUID, actor_id: UUID, remarks: str | None = None
    ) -> TransitionResult:
        """Project office sends a received DO to the area office."""
        return self._transition(Operation.DISPATCH, do_id, actor_id, remarks)

    def approve(
        self, do_id: UUID, actor_id: UUID, remarks: str | None = None
    ) -> TransitionResult:
        """Forward to the next department, or complete at road sale."""
        return self._transition(Operation.APPROVE, do_id, actor_id, remarks)

    def reject(
        self, do_id: UUID, actor_id: UUID, remarks: str | None = None
    ) -> TransitionResult:
        """Stop the DO permanently at the actor's department."""
        return self._transition(Operation.REJECT, do_id, actor_id, remarks)

    def search(self, do_number: str) -> DeliveryOrderDetail:
        """
        Exact DO number lookup with full history.

        Raises:
            DeliveryOrderNotFoundError: If no order has this number.
        """
        return DeliveryOrderSelector(self.session).get_detail(do_number)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(
        self,
        operation: Operation,
        do_id: UUID,
        actor_id: UUID,
        remarks: str | None,
    ) -> TransitionResult:
        with self._operation(operation, actor_id, do_id=str(do_id)):
            try:
                return self._move(operation, do_id, actor_id, remarks or None)
            except DBAPIError as exc:
                raise self._storage_failure(operation, exc) from exc

    def _move(
        self,
        operation: Operation,
        do_id: UUID,
        actor_id: UUID,
        remarks: str | None,
    ) -> TransitionResult:
        order = self._orders.get(do_id)
        actor = self._users.get_by_id(actor_id)

        with LogContext.bind(do_number=order.do_number):
            stage = order.stage
            try:
                if stage.is_terminal:
                    raise AlreadyTerminalError(
                        order.do_number, stage.status.value, operation.value
                    )
                if not actor.is_active:
                    raise UserInactiveError(str(actor_id))
                plan = plan_transition(
                    stage, actor.department, operation, do_number=order.do_number
                )
            except (AlreadyTerminalError, AuthorizationError) as exc:
                self._log_refused(operation, order, exc)
                raise

            with self.session.begin_nested():
                return self._apply(order, plan, actor, remarks, operation)

    def _create(self, actor_id: UUID, draft: DeliveryOrderDraft) -> DeliveryOrderInfo:
        try:
            actor = self._users.require_actor(
                actor_id, Operation.CREATE.value, Department.PAPER_CREATOR
            )
        except AuthorizationError as exc:
            self._log_refused(Operation.CREATE, None, exc)
            raise
        plan = plan_transition(INITIAL_STAGE, actor.department, Operation.CREATE)

        with self.session.begin_nested():
            order = self._orders.create_delivery_order(draft, actor.id)
            with LogContext.bind(do_id=str(order.id), do_number=order.do_number):
                return self._apply(order, plan, actor, None, Operation.CREATE).order

    def _operation(self, operation: Operation, actor_id: UUID, **fields: str):
        """Log context shared by every record one engine call emits."""
        return LogContext.bind(
            operation_id=LogContext.new_operation_id(),
            operation=operation.value,
            actor_id=str(actor_id),
            **fields,
        )

    def _apply(
        self,
        order: DeliveryOrderInfo,
        plan: TransitionPlan,
        actor: UserInfo,
        remarks: str | None,
        operation: Operation,
    ) -> TransitionResult:
        """Conditional state write plus history append; caller holds the savepoint."""
        self._orders.update_state(
            order.id, plan.from_stage, order.version, plan.to_stage, actor.id
        )
        entry = self._append_history(order.id, plan, actor.id, remarks)
        updated = self._orders.get(order.id)

        logger.info(
            "workflow_transition",
            extra={
                "operation": operation.value,
                "action": plan.action.value,
                "do_id": str(order.id),
                "do_number": order.do_number,
                "from_status": plan.from_stage.status.value,
                "to_status": plan.to_stage.status.value,
                "from_department": plan.from_department.value,
                "to_department": plan.to_department.value,
                "version": updated.version,
                "history_seq": entry.seq,
            },
        )
        return TransitionResult(
            operation=operation,
            order=updated,
            entry=entry,
            from_stage=plan.from_stage,
            to_stage=plan.to_stage,
        )

    def _append_history(
        self,
        order_id: UUID,
        plan: TransitionPlan,
        actor_id: UUID,
        remarks: str | None,
    ) -> HistoryEntryInfo:
        entry = WorkflowHistoryEntry(
            id=self._id_factory(),
            delivery_order_id=order_id,
            seq=self._sequences.next_value(SequenceService.WORKFLOW_HISTORY),
            from_department=plan.from_department.value,
            to_department=plan.to_department.value,
            action=plan.action.value,
            performed_by_id=actor_id,
            remarks=remarks,
            performed_at=self._clock.now_utc(),
        )
        self.session.add(entry)
        self.session.flush()
        return HistoryEntryInfo(
            id=entry.id,
            delivery_order_id=order_id,
            seq=entry.seq,
            from_department=plan.from_department,
            to_department=plan.to_department,
            action=plan.action,
            performed_by_id=actor_id,
            remarks=remarks,
            performed_at=entry.performed_at,
        )

    def _log_refused(self, operation: Operation, order, exc) -> None:
        extra = {
            "operation": operation.value,
            "error_code": exc.code,
            "reason": str(exc),
        }
        if order is not None:
            extra["current_status"] = order.current_status.value
            extra["current_location"] = order.current_location.value
        logger.warning("workflow_transition_refused", extra=extra)

    def _storage_failure(self, operation: Operation, exc: DBAPIError) -> StorageFailureError:
        logger.error(
            "workflow_storage_failure",
            extra={"operation": operation.value, "db_error": type(exc.orig).__name__},
        )
        return StorageFailureError(operation.value, str(exc.orig))
