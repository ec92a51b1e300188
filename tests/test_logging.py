"""Tests for the structured JSON logging helpers."""

import json
import logging
import sys
from io import StringIO
from uuid import UUID

import pytest

from orderflow_kernel.domain.values import DoStatus
from orderflow_kernel.exceptions import ForbiddenDepartmentError
from orderflow_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
)


def _format(record: logging.LogRecord) -> dict:
    return json.loads(StructuredFormatter().format(record))


def _record(msg="event", level=logging.INFO, exc_info=None, **extra):
    record = logging.LogRecord(
        "orderflow_kernel.test", level, __file__, 1, msg, (), exc_info
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_core_fields(self):
        payload = _format(_record("workflow_transition", logging.WARNING))
        assert payload["message"] == "workflow_transition"
        assert payload["level"] == "WARNING"
        assert payload["logger"] == "orderflow_kernel.test"
        assert "ts" in payload

    def test_extras_are_serialised(self):
        uid = UUID(int=7)
        payload = _format(_record(do_id=uid, status=DoStatus.COMPLETED, version=3))
        assert payload["do_id"] == str(uid)
        assert payload["status"] == "completed"
        assert payload["version"] == 3

    def test_exception_fields(self):
        try:
            raise ForbiddenDepartmentError(
                "area_office", "approve", "delivery order is at project_office",
                current_location="project_office",
            )
        except ForbiddenDepartmentError:
            payload = _format(_record(exc_info=sys.exc_info()))

        assert payload["exc_type"] == "ForbiddenDepartmentError"
        assert payload["exc_code"] == "FORBIDDEN_DEPARTMENT"
        assert payload["exc_current_location"] == "project_office"
        assert "traceback" in payload


class TestLogContext:
    def test_bound_fields_appear_in_output(self):
        with LogContext.bind(actor_id="u-1", do_number="DO-2025-001"):
            payload = _format(_record())
        assert payload["actor_id"] == "u-1"
        assert payload["do_number"] == "DO-2025-001"

    def test_bind_restores_previous_values(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner"):
            assert LogContext.get_all()["actor_id"] == "inner"
        assert LogContext.get_all()["actor_id"] == "outer"

    def test_none_values_are_ignored(self):
        with LogContext.bind(actor_id=None, do_id="d-1"):
            assert LogContext.get_all() == {"do_id": "d-1"}

    def test_clear(self):
        LogContext.set(operation_id="op-1")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(trace_id="t-1")
        with pytest.raises(TypeError):
            with LogContext.bind(request_id="r-1"):
                pass

    def test_operation_ids_are_unique(self):
        assert LogContext.new_operation_id() != LogContext.new_operation_id()


class TestLoggerSetup:
    def test_namespace(self):
        assert get_logger("services.x").name == "orderflow_kernel.services.x"

    def test_configure_is_idempotent(self):
        root = logging.getLogger("orderflow_kernel")
        before = list(root.handlers)
        configure_logging(level=logging.ERROR, stream=StringIO())
        assert root.handlers == before
        assert root.level == logging.DEBUG

    def test_kernel_logger_does_not_propagate(self):
        assert logging.getLogger("orderflow_kernel").propagate is False
