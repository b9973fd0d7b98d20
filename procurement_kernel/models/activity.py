"""
Activity trail ORM model.

Append-only record of who did what to which entity: RFQ lifecycle
changes, supplier portal access (view, decline, submit, reconcile),
acceptance changes, client quote and order status changes.  Rows are
never updated or deleted.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from procurement_kernel.db.base import Base, UUIDString


class ActivityRecord(Base):
    """One immutable activity entry."""

    __tablename__ = "activity_records"
    __table_args__ = (
        Index("idx_activity_entity", "entity_type", "entity_id"),
    )

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    # Supplier portal actions carry the supplier id; system actions carry none.
    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
