"""Database infrastructure for the muster kernel."""

from muster_kernel.db.base import Base, TrackedBase, UUIDString
from muster_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    is_postgres,
    make_session_factory,
    session_scope,
)
from muster_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from muster_kernel.db.types import UTCDateTime

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "UTCDateTime",
    "init_engine_from_url",
    "make_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "is_postgres",
    "register_immutability_listeners",
    "unregister_immutability_listeners",
]
