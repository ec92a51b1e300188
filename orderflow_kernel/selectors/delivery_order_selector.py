"""
Module: orderflow_kernel.selectors.delivery_order_selector
Responsibility: Department- and status-scoped read views over delivery
    orders: inbox, pending, processed, project office stages, search,
    detail with history, administrative listing and dashboard counts.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only.  Every query reloads DO rows (populate_existing) so a
      view never shows state older than the database.
    - Listings are newest first (created_at DESC, do_number DESC).

Failure modes:
    - UserNotFoundError for an unknown viewing actor.
    - DeliveryOrderNotFoundError from get_detail().
    - ValidationError for an unknown project office stage name.
"""

from uuid import UUID

from sqlalchemy import and_, exists, func, select
from sqlalchemy.sql import Select

from orderflow_kernel.domain.dtos import (
    DashboardStats,
    DeliveryOrderDetail,
    DeliveryOrderInfo,
)
from orderflow_kernel.domain.values import (
    TERMINAL_STATUSES,
    Department,
    DoStatus,
    WorkflowAction,
)
from orderflow_kernel.exceptions import (
    DeliveryOrderNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from orderflow_kernel.models.delivery_order import DeliveryOrder
from orderflow_kernel.models.party import Party
from orderflow_kernel.models.user import User
from orderflow_kernel.models.workflow_history import WorkflowHistoryEntry
from orderflow_kernel.selectors.base import BaseSelector
from orderflow_kernel.selectors.history_selector import HistorySelector

_TERMINAL_VALUES = tuple(s.value for s in TERMINAL_STATUSES)

PROJECT_OFFICE_STAGES = ("created", "received", "forwarded")


class DeliveryOrderSelector(BaseSelector[DeliveryOrder]):
    """Read views over delivery orders."""

    def _listing(self) -> Select:
        return (
            select(DeliveryOrder, Party.party_number, Party.name, User.username)
            .join(Party, DeliveryOrder.party_id == Party.id)
            .join(User, DeliveryOrder.created_by_id == User.id)
            .order_by(DeliveryOrder.created_at.desc(), DeliveryOrder.do_number.desc())
            .execution_options(populate_existing=True)
        )

    def _fetch(self, stmt: Select) -> list[DeliveryOrderInfo]:
        return [
            DeliveryOrderInfo(
                id=order.id,
                do_number=order.do_number,
                party_id=order.party_id,
                authorized_person=order.authorized_person,
                valid_from=order.valid_from,
                valid_until=order.valid_until,
                notes=order.notes,
                current_status=DoStatus(order.current_status),
                current_location=Department(order.current_location),
                version=order.version,
                created_by_id=order.created_by_id,
                created_at=order.created_at,
                party_number=party_number,
                party_name=party_name,
                creator_username=creator_username,
            )
            for order, party_number, party_name, creator_username in self.session.execute(
                stmt
            )
        ]

    def _department_of(self, actor_id: UUID) -> Department:
        department = self.session.execute(
            select(User.department).where(User.id == actor_id)
        ).scalar_one_or_none()
        if department is None:
            raise UserNotFoundError(str(actor_id))
        return Department(department)

    def _scoped(self, actor_id: UUID) -> tuple[Select, Department]:
        department = self._department_of(actor_id)
        stmt = self._listing()
        if department == Department.ROLE_CREATOR:
            return stmt, department
        if department == Department.PAPER_CREATOR:
            return stmt.where(DeliveryOrder.created_by_id == actor_id), department
        return stmt.where(DeliveryOrder.current_location == department.value), department

    def by_department(self, actor_id: UUID) -> list[DeliveryOrderInfo]:
        """
        The actor's working set.

        paper_creator: every DO the actor created.  role_creator: every DO.
        Other departments: DOs currently located there.
        """
        stmt, _ = self._scoped(actor_id)
        return self._fetch(stmt)

    def pending(self, actor_id: UUID) -> list[DeliveryOrderInfo]:
        """The actor's working set without completed or rejected orders."""
        stmt, _ = self._scoped(actor_id)
        return self._fetch(stmt.where(DeliveryOrder.current_status.not_in(_TERMINAL_VALUES)))

    def processed(self, actor_id: UUID) -> list[DeliveryOrderInfo]:
        """DOs the actor's department has handed on and no longer holds."""
        department = self._department_of(actor_id)
        handed_on = exists().where(
            and_(
                WorkflowHistoryEntry.delivery_order_id == DeliveryOrder.id,
                WorkflowHistoryEntry.from_department == department.value,
            )
        )
        return self._fetch(
            self._listing()
            .where(handed_on)
            .where(DeliveryOrder.current_location != department.value)
        )

    def project_office_stage(self, stage: str) -> list[DeliveryOrderInfo]:
        """
        Project office sub-lists.

        ``created``: waiting to be received.  ``received``: received, not yet
        dispatched.  ``forwarded``: dispatched to the area office.
        """
        stmt = self._listing()
        if stage == "created":
            stmt = stmt.where(
                DeliveryOrder.current_status == DoStatus.AT_PROJECT_OFFICE.value
            )
        elif stage == "received":
            stmt = stmt.where(
                DeliveryOrder.current_status == DoStatus.RECEIVED_AT_PROJECT_OFFICE.value
            )
        elif stage == "forwarded":
            stmt = stmt.where(
                exists().where(
                    and_(
                        WorkflowHistoryEntry.delivery_order_id == DeliveryOrder.id,
                        WorkflowHistoryEntry.from_department
                        == Department.PROJECT_OFFICE.value,
                        WorkflowHistoryEntry.action
                        == WorkflowAction.DISPATCHED_TO_AREA_OFFICE.value,
                    )
                )
            )
        else:
            raise ValidationError(
                "stage", f"expected one of {', '.join(PROJECT_OFFICE_STAGES)}"
            )
        return self._fetch(stmt)

    def search(self, term: str) -> list[DeliveryOrderInfo]:
        """Case-insensitive substring match on DO number."""
        term = (term or "").strip()
        if not term:
            return []
        return self._fetch(
            self._listing().where(
                func.lower(DeliveryOrder.do_number).contains(term.lower(), autoescape=True)
            )
        )

    def all_orders(self) -> list[DeliveryOrderInfo]:
        """Every delivery order, newest first."""
        return self._fetch(self._listing())

    def get_detail(self, do_number: str) -> DeliveryOrderDetail:
        """
        Exact DO number lookup with the full ledger, oldest entry first.

        Raises:
            DeliveryOrderNotFoundError: If no order has this number.
        """
        do_number = do_number.strip()
        rows = self._fetch(self._listing().where(DeliveryOrder.do_number == do_number))
        if not rows:
            raise DeliveryOrderNotFoundError(do_number)
        order = rows[0]
        return DeliveryOrderDetail(
            order=order,
            history=HistorySelector(self.session).entries_for(order.id),
        )

    def dashboard_stats(self, actor_id: UUID) -> DashboardStats:
        """Counts over the actor's working set (global for role_creator)."""
        orders = self.by_department(actor_id)
        department = self._department_of(actor_id)
        terminal = TERMINAL_STATUSES
        return DashboardStats(
            total=len(orders),
            in_progress=sum(
                1
                for o in orders
                if o.current_status not in terminal
                and o.current_status != DoStatus.CREATED
            ),
            completed=sum(1 for o in orders if o.current_status == DoStatus.COMPLETED),
            pending=sum(
                1
                for o in orders
                if o.current_location == department and o.current_status not in terminal
            ),
        )
