"""Database layer - engine, base classes and write enforcement."""

from orderflow_kernel.db.base import (
    SYSTEM_ACTOR_ID,
    UUID,
    Base,
    TrackedBase,
    UTCDateTime,
    UUIDString,
)
from orderflow_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "UUID",
    "SYSTEM_ACTOR_ID",
]
