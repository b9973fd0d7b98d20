"""
Declarative bases shared by every procurement table.

* Primary keys are uuid4 values stored as 36-character strings so the same
  schema runs on PostgreSQL and SQLite.
* ``Decimal`` columns are ``Numeric(38, 9)``: unit costs, markups and
  payments are never floats.
* Records that change state after creation (RFQs, supplier invitations,
  client quotes, purchase orders) derive from ``VersionedBase`` and are only
  updated through the compare-and-set helpers in ``services.base``.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """``uuid.UUID`` in Python, ``VARCHAR(36)`` in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        # SQLite only autoincrements INTEGER, not BIGINT.
        int: BigInteger().with_variant(Integer(), "sqlite"),
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Adds who created or last touched a row, and when."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())
    created_by_id: Mapped[PyUUID]
    updated_by_id: Mapped[PyUUID | None]


class VersionedBase(TrackedBase):
    """Adds an optimistic-lock counter bumped by every conditional UPDATE."""

    __abstract__ = True

    version: Mapped[int] = mapped_column(Integer, default=1)


UUID = PyUUID
