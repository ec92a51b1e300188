"""
Structured JSON logging for the OrderFlow kernel.

Every record leaves as one JSON line.  Fields bound through ``LogContext``
are merged into each line: the id of the engine call that emitted it, the
operation, the acting user and the delivery order being moved.  One
``operation_id`` therefore ties together the service, selector and db
records of a single create/receive/dispatch/approve/reject.

Kernel errors logged with ``exc_info`` contribute their ``code`` and their
public attributes as ``exc_*`` fields.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Iterator
from uuid import UUID, uuid4

CONTEXT_FIELDS: tuple[str, ...] = (
    "operation_id",
    "operation",
    "actor_id",
    "do_id",
    "do_number",
)

_bound: ContextVar[dict[str, str] | None] = ContextVar(
    "orderflow_log_context", default=None
)


class LogContext:
    """
    Per-call log fields, safe across threads and tasks.

    Only the names in ``CONTEXT_FIELDS`` are accepted; ``None`` values are
    skipped so callers can pass optional ids straight through.
    """

    @staticmethod
    def new_operation_id() -> str:
        return uuid4().hex

    @staticmethod
    def _merged(fields: dict[str, str | None]) -> dict[str, str]:
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context field(s): {sorted(unknown)}")
        merged = dict(_bound.get() or {})
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        return merged

    @classmethod
    def set(cls, **fields: str | None) -> None:
        _bound.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_bound.get() or {})

    @classmethod
    def clear(cls) -> None:
        _bound.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[dict[str, str]]:
        """Bind fields for the duration of the block, then restore."""
        merged = cls._merged(fields)
        token = _bound.set(merged)
        try:
            yield merged
        finally:
            _bound.reset(token)


# Attributes every LogRecord carries; anything else came in via ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, _jsonable(value))

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        for name, value in vars(exc).items():
            if not name.startswith("_"):
                fields[f"exc_{name}"] = _jsonable(value)
        return fields


_ROOT_LOGGER = "orderflow_kernel"


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``orderflow_kernel`` namespace."""
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the kernel logger.

    Only the first call has any effect.  Kernel records do not propagate
    to the root logger.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    kernel = logging.getLogger(_ROOT_LOGGER)
    kernel.setLevel(level)
    kernel.propagate = False

    target = handler or logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    kernel.addHandler(target)


def reset_logging() -> None:
    """Drop the kernel handlers so the next configure_logging applies (tests)."""
    global _configured
    with _lock:
        _configured = False
    kernel = logging.getLogger(_ROOT_LOGGER)
    kernel.handlers.clear()
    kernel.setLevel(logging.WARNING)
