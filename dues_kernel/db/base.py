"""
Module: dues_kernel.db.base
Responsibility: Declarative base for the credit-ledger ORM models.  Provides
    the UUID primary key convention and the type annotation map that keeps
    money columns integral.
Architecture position: Kernel > DB.  Lowest-level import target for models.
    MUST NOT import from models/, domain/, or outer layers.

Invariants enforced:
    - UUID primary keys stored as String(36) for SQLite/PostgreSQL portability.
    - Python int maps to BigInteger: money columns hold integer minor units.
      NEVER use float or Numeric for balances.
    - datetime maps to DateTime(timezone=True).
"""

from datetime import datetime
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all dues ORM models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - int maps to BigInteger (minor units).
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )
