"""
DeliveryOrderService -- delivery order rows and their state column writes.

Responsibility:
    Inserts new delivery orders, allocates DO numbers, loads orders fresh
    from the database, and performs the conditional state UPDATE the
    workflow engine relies on.

Architecture position:
    Kernel > Services -- imperative shell.  Called by WorkflowEngine; the
    state-writing method is not meant for any other caller.

Invariants enforced:
    - DO numbers are ``<prefix>-<year>-<seq>`` with ``seq`` taken from the
      locked ``do_number_<year>`` counter, zero padded to ``pad_width``.
    - Explicit DO numbers are unique: checked up front and again through
      the unique constraint inside a savepoint, so concurrent creates with
      the same number produce exactly one winner.
    - valid_until is strictly after valid_from.
    - State writes are conditioned on the observed status, location and
      version; a lost race raises OptimisticLockError and changes nothing.

Failure modes:
    - ValidationError, DuplicateDoNumberError, PartyNotFoundError,
      DeliveryOrderNotFoundError, OptimisticLockError.
"""

from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from orderflow_kernel.domain.clock import Clock, SystemClock
from orderflow_kernel.domain.dtos import DeliveryOrderDraft, DeliveryOrderInfo
from orderflow_kernel.domain.values import Department, DoStatus
from orderflow_kernel.domain.workflow import INITIAL_STAGE, WorkflowStage
from orderflow_kernel.exceptions import (
    DeliveryOrderNotFoundError,
    DuplicateDoNumberError,
    OptimisticLockError,
    PartyNotFoundError,
    ValidationError,
)
from orderflow_kernel.logging_config import get_logger
from orderflow_kernel.models.delivery_order import DeliveryOrder
from orderflow_kernel.models.party import Party
from orderflow_kernel.services.base import BaseService
from orderflow_kernel.services.sequence_service import SequenceService

logger = get_logger("services.delivery_order")

DEFAULT_DO_PREFIX = "DO"
DEFAULT_PAD_WIDTH = 3


def format_do_number(prefix: str, year: int, seq: int, pad_width: int) -> str:
    """``format_do_number("DO", 2025, 1, 3) == "DO-2025-001"``."""
    return f"{prefix}-{year}-{seq:0{pad_width}d}"


class DeliveryOrderService(BaseService[DeliveryOrder]):
    """Service for delivery order rows."""

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        id_factory: Callable[[], UUID] | None = None,
        do_number_prefix: str = DEFAULT_DO_PREFIX,
        pad_width: int = DEFAULT_PAD_WIDTH,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._id_factory = id_factory or uuid4
        self._prefix = do_number_prefix
        self._pad_width = pad_width
        self._sequences = SequenceService(session)

    def _to_dto(self, order: DeliveryOrder) -> DeliveryOrderInfo:
        return DeliveryOrderInfo(
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
        )

    def get(self, order_id: UUID) -> DeliveryOrderInfo:
        """
        Load a delivery order straight from the database.

        Any copy already in the session's identity map is overwritten, so
        the result reflects committed state plus this transaction's writes.

        Raises:
            DeliveryOrderNotFoundError: If no such order exists.
        """
        order = self.session.execute(
            select(DeliveryOrder)
            .where(DeliveryOrder.id == order_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise DeliveryOrderNotFoundError(str(order_id))
        return self._to_dto(order)

    def find_by_number(self, do_number: str) -> DeliveryOrderInfo | None:
        order = self.session.execute(
            select(DeliveryOrder)
            .where(DeliveryOrder.do_number == do_number)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return self._to_dto(order) if order else None

    def get_by_number(self, do_number: str) -> DeliveryOrderInfo:
        """
        Raises:
            DeliveryOrderNotFoundError: If no order has this number.
        """
        order = self.find_by_number(do_number)
        if order is None:
            raise DeliveryOrderNotFoundError(do_number)
        return order

    def _number_taken(self, do_number: str) -> bool:
        return self.session.execute(
            select(DeliveryOrder.id).where(DeliveryOrder.do_number == do_number)
        ).first() is not None

    def generate_do_number(self, year: int) -> str:
        """
        Allocate the next DO number for ``year``.

        Skips values already claimed by explicitly numbered orders.
        """
        sequence_name = SequenceService.do_number_sequence(year)
        while True:
            seq = self._sequences.next_value(sequence_name)
            do_number = format_do_number(self._prefix, year, seq, self._pad_width)
            if not self._number_taken(do_number):
                return do_number
            logger.debug(
                "do_number_skipped",
                extra={"do_number": do_number, "sequence_name": sequence_name},
            )

    def _validate(self, draft: DeliveryOrderDraft) -> None:
        if not (draft.authorized_person or "").strip():
            raise ValidationError("authorized_person", "must not be blank")
        if draft.valid_from is None:
            raise ValidationError("valid_from", "is required")
        if draft.valid_until is None:
            raise ValidationError("valid_until", "is required")
        try:
            ordered = draft.valid_until > draft.valid_from
        except TypeError:
            raise ValidationError(
                "valid_until", "cannot compare naive and timezone-aware datetimes"
            )
        if not ordered:
            raise ValidationError("valid_until", "must be after valid_from")
        if draft.do_number is not None and not draft.do_number.strip():
            raise ValidationError("do_number", "must not be blank")

    def create_delivery_order(
        self,
        draft: DeliveryOrderDraft,
        creator_id: UUID,
    ) -> DeliveryOrderInfo:
        """
        Insert a delivery order in the ``created`` stage.

        Called by the workflow engine's create transition, which moves the
        order on to the project office in the same savepoint.

        Raises:
            ValidationError, PartyNotFoundError, DuplicateDoNumberError.
        """
        self._validate(draft)

        if self.session.get(Party, draft.party_id) is None:
            raise PartyNotFoundError(str(draft.party_id))

        now = self._clock.now_utc()
        if draft.do_number is not None:
            do_number = draft.do_number.strip()
            if self._number_taken(do_number):
                raise DuplicateDoNumberError(do_number)
        else:
            do_number = self.generate_do_number(now.year)

        order = DeliveryOrder(
            id=self._id_factory(),
            do_number=do_number,
            party_id=draft.party_id,
            authorized_person=draft.authorized_person.strip(),
            valid_from=draft.valid_from,
            valid_until=draft.valid_until,
            notes=draft.notes or None,
            current_status=INITIAL_STAGE.status.value,
            current_location=INITIAL_STAGE.location.value,
            version=1,
            created_by_id=creator_id,
            created_at=now,
            updated_at=now,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(order)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise DuplicateDoNumberError(do_number)

        logger.info(
            "delivery_order_inserted",
            extra={"do_id": str(order.id), "do_number": do_number},
        )
        return self._to_dto(order)

    def update_state(
        self,
        order_id: UUID,
        expected: WorkflowStage,
        expected_version: int,
        new: WorkflowStage,
        actor_id: UUID,
    ) -> int:
        """
        Move an order from ``expected`` to ``new`` if nobody beat us to it.

        Returns:
            The order's new version.

        Raises:
            OptimisticLockError: The row no longer matches the observed
                stage and version.
        """
        result = self.session.execute(
            update(DeliveryOrder)
            .where(
                DeliveryOrder.id == order_id,
                DeliveryOrder.current_status == expected.status.value,
                DeliveryOrder.current_location == expected.location.value,
                DeliveryOrder.version == expected_version,
            )
            .values(
                current_status=new.status.value,
                current_location=new.location.value,
                version=expected_version + 1,
                updated_by_id=actor_id,
                updated_at=self._clock.now_utc(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "optimistic_lock_conflict",
                extra={
                    "do_id": str(order_id),
                    "expected_status": expected.status.value,
                    "expected_version": expected_version,
                },
            )
            raise OptimisticLockError("DeliveryOrder", str(order_id))
        return expected_version + 1
