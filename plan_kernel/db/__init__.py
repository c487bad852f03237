"""Database layer: declarative base, engine, column types, ORM listeners."""

from plan_kernel.db.base import Base, TrackedBase, UUIDString
from plan_kernel.db.engine import (
    create_engine_from_url,
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "create_engine_from_url",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
]
