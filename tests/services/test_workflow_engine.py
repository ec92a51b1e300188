"""
Tests for WorkflowEngine.

Covers:
- Create (auto-submit to project office, DO numbering, validation)
- Receive, dispatch, approve, reject
- Full lifecycle and rejection scenarios
- Refusals: wrong department, terminal lock, inactive and unknown actors
- Refusals write nothing
- Structured logging of transitions
"""

import sqlite3
from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from orderflow_kernel.domain.values import Department, DoStatus, Operation, WorkflowAction
from orderflow_kernel.domain.workflow import WorkflowStage
from orderflow_kernel.exceptions import (
    AlreadyTerminalError,
    DeliveryOrderNotFoundError,
    DuplicateDoNumberError,
    ForbiddenDepartmentError,
    PartyNotFoundError,
    StorageFailureError,
    UserInactiveError,
    UserNotFoundError,
    ValidationError,
)
from orderflow_kernel.logging_config import LogContext
from orderflow_kernel.selectors.delivery_order_selector import DeliveryOrderSelector
from orderflow_kernel.selectors.history_selector import HistorySelector
from orderflow_kernel.services.sequence_service import SequenceService
from orderflow_kernel.services.workflow_engine import WorkflowEngine

from tests.conftest import VALID_FROM, VALID_UNTIL


def _ledger(session, order):
    return HistorySelector(session).entries_for(order.id)


class TestCreate:
    def test_create_lands_at_project_office(self, create_do, session):
        order = create_do()

        assert order.current_status == DoStatus.AT_PROJECT_OFFICE
        assert order.current_location == Department.PROJECT_OFFICE
        assert order.version == 2

        ledger = _ledger(session, order)
        assert len(ledger) == 1
        assert ledger[0].action == WorkflowAction.SUBMITTED_TO_PROJECT_OFFICE
        assert ledger[0].from_department == Department.PAPER_CREATOR
        assert ledger[0].to_department == Department.PROJECT_OFFICE

    def test_first_number_of_the_year(self, create_do):
        assert create_do().do_number == "DO-2025-001"

    def test_numbers_increase(self, create_do):
        numbers = [create_do().do_number for _ in range(3)]
        assert numbers == ["DO-2025-001", "DO-2025-002", "DO-2025-003"]

    def test_numbering_restarts_each_year(self, create_do, clock):
        create_do()
        clock.set_time(datetime(2026, 1, 2, 8, 0, tzinfo=timezone.utc))
        assert create_do().do_number == "DO-2026-001"

    def test_explicit_number(self, create_do):
        assert create_do(do_number="DO-2025-500").do_number == "DO-2025-500"

    def test_generated_number_skips_explicit_one(self, create_do):
        create_do(do_number="DO-2025-001")
        assert create_do().do_number == "DO-2025-002"

    def test_duplicate_explicit_number(self, create_do, session):
        create_do(do_number="DO-2025-042")
        with pytest.raises(DuplicateDoNumberError) as exc_info:
            create_do(do_number="DO-2025-042")
        assert exc_info.value.do_number == "DO-2025-042"

    def test_notes_and_fields_stored(self, create_do):
        order = create_do(notes="Deliver to gate 3", authorized_person="  Meena Shah ")
        assert order.notes == "Deliver to gate 3"
        assert order.authorized_person == "Meena Shah"

    def test_empty_notes_become_none(self, create_do):
        assert create_do(notes="").notes is None

    def test_valid_until_must_follow_valid_from(self, create_do):
        same = datetime(2025, 3, 1, tzinfo=timezone.utc)
        with pytest.raises(ValidationError) as exc_info:
            create_do(valid_from=same, valid_until=same)
        assert exc_info.value.field == "valid_until"

    def test_mixed_naive_and_aware_dates_rejected(self, create_do):
        with pytest.raises(ValidationError):
            create_do(valid_until=datetime(2025, 6, 30))

    def test_blank_authorized_person_rejected(self, create_do):
        with pytest.raises(ValidationError):
            create_do(authorized_person="   ")

    def test_unknown_party(self, create_do):
        with pytest.raises(PartyNotFoundError):
            create_do(party_id=uuid4())

    @pytest.mark.parametrize(
        "department",
        [
            Department.PROJECT_OFFICE,
            Department.AREA_OFFICE,
            Department.ROAD_SALE,
            Department.ROLE_CREATOR,
        ],
    )
    def test_only_paper_creator_may_create(self, create_do, actors, department):
        with pytest.raises(ForbiddenDepartmentError):
            create_do(actor_id=actors[department].id)

    def test_inactive_creator(self, create_do, user_service, paper_creator, admin):
        user_service.set_active(paper_creator.id, False, admin.id)
        with pytest.raises(UserInactiveError):
            create_do()

    def test_unknown_creator(self, create_do):
        with pytest.raises(UserNotFoundError):
            create_do(actor_id=uuid4())

    def test_failed_create_leaves_no_rows(self, create_do, session, workflow):
        create_do(do_number="DO-2025-009")
        with pytest.raises(DuplicateDoNumberError):
            create_do(do_number="DO-2025-009")
        detail = workflow.search("DO-2025-009")
        assert len(detail.history) == 1


class TestTransitions:
    def test_receive(self, create_do, workflow, project_office):
        order = create_do()
        result = workflow.receive(order.id, project_office.id, remarks="Checked in")

        assert result.operation == Operation.RECEIVE
        assert result.order.current_status == DoStatus.RECEIVED_AT_PROJECT_OFFICE
        assert result.order.current_location == Department.PROJECT_OFFICE
        assert result.entry.action == WorkflowAction.RECEIVED
        assert result.entry.remarks == "Checked in"
        assert result.order.version == order.version + 1

    def test_dispatch_after_receive(self, create_do, workflow, project_office):
        order = create_do()
        workflow.receive(order.id, project_office.id)
        result = workflow.dispatch(order.id, project_office.id)

        assert result.order.current_status == DoStatus.AT_AREA_OFFICE
        assert result.order.current_location == Department.AREA_OFFICE
        assert result.entry.action == WorkflowAction.DISPATCHED_TO_AREA_OFFICE
        assert result.entry.from_department == Department.PROJECT_OFFICE
        assert result.entry.to_department == Department.AREA_OFFICE

    def test_direct_dispatch_refused(self, create_do, workflow, project_office, session):
        order = create_do()
        with pytest.raises(ForbiddenDepartmentError):
            workflow.dispatch(order.id, project_office.id)
        assert len(_ledger(session, order)) == 1

    def test_project_office_approve_forwards(self, create_do, workflow, project_office):
        order = create_do()
        result = workflow.approve(order.id, project_office.id)
        assert result.order.current_status == DoStatus.AT_AREA_OFFICE
        assert result.entry.action == WorkflowAction.APPROVED_AND_FORWARDED

    def test_reject_at_area_office(self, create_do, advance, workflow, area_office):
        order = advance(create_do(), "area_office")
        result = workflow.reject(order.id, area_office.id, remarks="Wrong party")

        assert result.order.current_status == DoStatus.REJECTED
        assert result.order.current_location == Department.AREA_OFFICE
        assert result.to_stage == WorkflowStage(
            DoStatus.REJECTED, rejected_at=Department.AREA_OFFICE
        )
        assert result.entry.from_department == Department.AREA_OFFICE
        assert result.entry.to_department == Department.AREA_OFFICE

    def test_empty_remarks_stored_as_none(self, create_do, workflow, project_office):
        result = workflow.receive(create_do().id, project_office.id, remarks="")
        assert result.entry.remarks is None

    def test_remarks_stored_verbatim(self, create_do, workflow, project_office, session):
        remark = "  Seal broken; see photo #2  "
        order = create_do()
        workflow.receive(order.id, project_office.id, remarks=remark)
        assert _ledger(session, order)[-1].remarks == remark

    def test_unknown_order(self, workflow, project_office):
        with pytest.raises(DeliveryOrderNotFoundError):
            workflow.receive(uuid4(), project_office.id)

    def test_unknown_actor(self, create_do, workflow):
        order = create_do()
        with pytest.raises(UserNotFoundError):
            workflow.receive(order.id, uuid4())

    def test_inactive_actor(self, create_do, workflow, user_service, project_office, admin):
        order = create_do()
        user_service.set_active(project_office.id, False, admin.id)
        with pytest.raises(UserInactiveError):
            workflow.receive(order.id, project_office.id)

    def test_terminal_reported_before_inactive(
        self, create_do, workflow, user_service, project_office, admin
    ):
        order = create_do()
        workflow.reject(order.id, project_office.id)
        user_service.set_active(project_office.id, False, admin.id)
        with pytest.raises(AlreadyTerminalError):
            workflow.receive(order.id, project_office.id)


class TestScenarios:
    def test_full_lifecycle(
        self, workflow, paper_creator, project_office, area_office, road_sale, party, session
    ):
        order = workflow.create(
            paper_creator.id,
            party.id,
            "Ravi Kumar",
            datetime(2025, 3, 1, tzinfo=timezone.utc),
            datetime(2025, 6, 30, tzinfo=timezone.utc),
        )
        assert order.do_number == "DO-2025-001"

        workflow.receive(order.id, project_office.id)
        workflow.dispatch(order.id, project_office.id)
        workflow.approve(order.id, area_office.id)
        final = workflow.approve(order.id, road_sale.id).order

        assert final.current_status == DoStatus.COMPLETED
        assert final.current_location == Department.ROAD_SALE

        detail = workflow.search("DO-2025-001")
        assert [e.action for e in detail.history] == [
            WorkflowAction.SUBMITTED_TO_PROJECT_OFFICE,
            WorkflowAction.RECEIVED,
            WorkflowAction.DISPATCHED_TO_AREA_OFFICE,
            WorkflowAction.APPROVED_AND_FORWARDED,
            WorkflowAction.COMPLETED,
        ]
        assert [(e.from_department, e.to_department) for e in detail.history] == [
            (Department.PAPER_CREATOR, Department.PROJECT_OFFICE),
            (Department.PROJECT_OFFICE, Department.PROJECT_OFFICE),
            (Department.PROJECT_OFFICE, Department.AREA_OFFICE),
            (Department.AREA_OFFICE, Department.ROAD_SALE),
            (Department.ROAD_SALE, Department.ROAD_SALE),
        ]
        assert [e.performer_username for e in detail.history] == [
            "pc_user", "po_user", "po_user", "ao_user", "rs_user",
        ]

    def test_reject_then_approve(self, create_do, workflow, project_office, session):
        order = create_do()
        result = workflow.reject(order.id, project_office.id, remarks="damaged")
        assert result.order.current_status == DoStatus.REJECTED
        assert result.order.current_location == Department.PROJECT_OFFICE

        with pytest.raises(AlreadyTerminalError):
            workflow.approve(order.id, project_office.id)

        ledger = _ledger(session, order)
        assert len(ledger) == 2
        assert ledger[-1].remarks == "damaged"

    def test_area_office_cannot_approve_at_project_office(
        self, create_do, workflow, area_office, session
    ):
        order = create_do()
        with pytest.raises(ForbiddenDepartmentError) as exc_info:
            workflow.approve(order.id, area_office.id)

        assert exc_info.value.current_location == "project_office"
        unchanged = workflow.search(order.do_number)
        assert unchanged.order.current_status == DoStatus.AT_PROJECT_OFFICE
        assert unchanged.order.version == order.version
        assert len(unchanged.history) == 1


class TestTerminalLock:
    @pytest.mark.parametrize("operation", ["receive", "dispatch", "approve", "reject"])
    def test_completed_refuses_everything(
        self, create_do, advance, workflow, actors, session, operation
    ):
        order = advance(create_do(), "completed")
        before = len(_ledger(session, order))
        for department in Department:
            with pytest.raises(AlreadyTerminalError):
                getattr(workflow, operation)(order.id, actors[department].id)
        assert len(_ledger(session, order)) == before


class TestLogging:
    def test_transition_logged(self, create_do, workflow, project_office, captured_logs):
        order = create_do()
        workflow.receive(order.id, project_office.id)

        records = [r for r in captured_logs() if r["message"] == "workflow_transition"]
        receive = records[-1]
        assert receive["operation"] == "receive"
        assert receive["action"] == "received"
        assert receive["do_number"] == order.do_number
        assert receive["actor_id"] == str(project_office.id)
        assert receive["from_status"] == "at_project_office"
        assert receive["to_status"] == "received_at_project_office"

    def test_refusal_logged(self, create_do, workflow, area_office, captured_logs):
        order = create_do()
        with pytest.raises(ForbiddenDepartmentError):
            workflow.approve(order.id, area_office.id)

        refused = [
            r for r in captured_logs() if r["message"] == "workflow_transition_refused"
        ]
        assert len(refused) == 1
        assert refused[0]["level"] == "WARNING"
        assert refused[0]["error_code"] == "FORBIDDEN_DEPARTMENT"

    def test_one_operation_id_per_call(
        self, create_do, workflow, project_office, captured_logs
    ):
        order = create_do()
        workflow.receive(order.id, project_office.id)

        records = [r for r in captured_logs() if r["message"] == "workflow_transition"]
        create, receive = records[-2:]
        assert create["operation"] == "create"
        assert create["operation_id"] != receive["operation_id"]
        assert len(receive["operation_id"]) == 32
        assert LogContext.get_all() == {}

    def test_refusal_carries_operation_id(
        self, create_do, workflow, area_office, captured_logs
    ):
        order = create_do()
        with pytest.raises(ForbiddenDepartmentError):
            workflow.approve(order.id, area_office.id)

        refused = [
            r for r in captured_logs() if r["message"] == "workflow_transition_refused"
        ][0]
        assert refused["operation"] == "approve"
        assert refused["do_id"] == str(order.id)
        assert refused["operation_id"]


def _database_locked(self, sequence_name):
    raise OperationalError(
        "UPDATE sequence_counters", {}, sqlite3.OperationalError("database is locked")
    )


class TestStorageFailure:
    @pytest.fixture
    def dead_engine(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'missing' / 'orders.db'}"
        sess = Session(create_engine(url))
        yield WorkflowEngine(sess)
        sess.close()

    @pytest.mark.parametrize("operation", ["receive", "dispatch", "approve", "reject"])
    def test_unreachable_store_on_read(self, dead_engine, operation, captured_logs):
        with pytest.raises(StorageFailureError) as exc_info:
            getattr(dead_engine, operation)(uuid4(), uuid4())

        assert exc_info.value.code == "STORAGE_FAILURE"
        assert exc_info.value.operation == operation
        assert isinstance(exc_info.value.__cause__, OperationalError)
        failures = [
            r for r in captured_logs() if r["message"] == "workflow_storage_failure"
        ]
        assert failures[0]["level"] == "ERROR"
        assert failures[0]["db_error"] == "OperationalError"
        assert failures[0]["operation_id"]

    def test_unreachable_store_on_create(self, dead_engine):
        with pytest.raises(StorageFailureError) as exc_info:
            dead_engine.create(uuid4(), uuid4(), "Ravi Kumar", VALID_FROM, VALID_UNTIL)
        assert exc_info.value.operation == "create"

    def test_failed_history_append_leaves_order_unchanged(
        self, create_do, workflow, project_office, session, monkeypatch
    ):
        order = create_do()
        monkeypatch.setattr(SequenceService, "next_value", _database_locked)

        with pytest.raises(StorageFailureError) as exc_info:
            workflow.receive(order.id, project_office.id)
        assert exc_info.value.reason == "database is locked"

        monkeypatch.undo()
        detail = workflow.search(order.do_number)
        assert detail.order.current_status == DoStatus.AT_PROJECT_OFFICE
        assert detail.order.version == order.version
        assert len(detail.history) == 1

    def test_failed_create_writes_nothing(
        self, workflow, paper_creator, party, session, monkeypatch
    ):
        monkeypatch.setattr(SequenceService, "next_value", _database_locked)

        with pytest.raises(StorageFailureError):
            workflow.create(
                paper_creator.id, party.id, "Ravi Kumar", VALID_FROM, VALID_UNTIL
            )
        assert DeliveryOrderSelector(session).all_orders() == []

    def test_kernel_errors_pass_through(self, workflow, project_office):
        with pytest.raises(DeliveryOrderNotFoundError):
            workflow.receive(uuid4(), project_office.id)
