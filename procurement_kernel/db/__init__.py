"""Database layer - engine and base classes."""

from procurement_kernel.db.base import UUID, Base, TrackedBase, UUIDString, VersionedBase
from procurement_kernel.db.engine import create_tables, get_engine, get_session

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "TrackedBase",
    "VersionedBase",
    "UUIDString",
    "UUID",
]
