"""Database layer - engine, base classes and the append-only guard."""

from ledger_kernel.db.base import Base, UUIDString
from ledger_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from ledger_kernel.db.immutability import (
    check_append_only,
    register_immutability_listeners,
    unregister_immutability_listeners,
)

__all__ = [
    "Base",
    "UUIDString",
    "check_append_only",
    "create_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "register_immutability_listeners",
    "session_scope",
    "unregister_immutability_listeners",
]
