"""Database infrastructure: declarative base, engine and session helpers."""

from expense_kernel.db.base import Base, TrackedBase, UUIDString
from expense_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from expense_kernel.db.engine import (
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
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "register_immutability_listeners",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
    "unregister_immutability_listeners",
]
