"""Database layer - engine, base classes, types, and immutability listeners."""

from allocation_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from allocation_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from allocation_kernel.db.types import CurrencyCode, DecimalString, MinorUnits, PayloadHash

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "MinorUnits",
    "CurrencyCode",
    "PayloadHash",
    "DecimalString",
]
