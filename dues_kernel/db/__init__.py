"""Database layer - declarative base, engine and session helpers."""

from dues_kernel.db.base import Base, UUIDString
from dues_kernel.db.engine import (
    create_db_engine,
    create_tables,
    drop_tables,
    make_session_factory,
    session_scope,
)

__all__ = [
    "Base",
    "UUIDString",
    "create_db_engine",
    "create_tables",
    "drop_tables",
    "make_session_factory",
    "session_scope",
]
