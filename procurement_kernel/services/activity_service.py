"""
ActivityService -- append-only activity trail.

Responsibility:
    Records activity entries for any procurement entity and reads them
    back in the order they happened.  There is deliberately no update or
    delete operation.

Architecture position:
    Kernel > Services.  Flushes within the caller's transaction, so an
    activity entry commits or rolls back together with the change it
    describes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select

from procurement_kernel.domain.clock import Clock, SystemClock, as_utc
from procurement_kernel.logging_config import get_logger
from procurement_kernel.models.activity import ActivityRecord
from procurement_kernel.services.base import BaseService

logger = get_logger("services.activity")


@dataclass(frozen=True)
class Activity:
    """Read-side view of one activity entry."""
    entity_type: str
    entity_id: UUID
    action: str
    actor_id: UUID | None
    message: str
    occurred_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


def _json_safe(details: dict[str, Any]) -> dict[str, Any]:
    safe: dict[str, Any] = {}
    for key, value in details.items():
        if isinstance(value, (str, int, bool)) or value is None:
            safe[key] = value
        elif isinstance(value, dict):
            safe[key] = _json_safe(value)
        elif isinstance(value, (list, tuple)):
            safe[key] = [str(v) if not isinstance(v, (str, int, bool)) else v for v in value]
        else:
            safe[key] = str(value)
    return safe


class ActivityService(BaseService[ActivityRecord]):
    """Append and list activity entries."""

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def record(
        self,
        *,
        entity_type: str,
        entity_id: UUID,
        action: str,
        actor_id: UUID | None = None,
        message: str = "",
        details: dict[str, Any] | None = None,
    ) -> ActivityRecord:
        record = ActivityRecord(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            message=message,
            details=_json_safe(details or {}),
            occurred_at=self._clock.now(),
        )
        self.session.add(record)
        self.session.flush()
        logger.debug(
            "activity_recorded",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action,
            },
        )
        return record

    def list_for(
        self,
        entity_type: str,
        entity_id: UUID,
        action: str | None = None,
    ) -> list[Activity]:
        stmt = select(ActivityRecord).where(
            ActivityRecord.entity_type == entity_type,
            ActivityRecord.entity_id == entity_id,
        )
        if action is not None:
            stmt = stmt.where(ActivityRecord.action == action)
        stmt = stmt.order_by(ActivityRecord.occurred_at, ActivityRecord.id)
        rows = self.session.execute(stmt).scalars().all()
        return [
            Activity(
                entity_type=r.entity_type,
                entity_id=r.entity_id,
                action=r.action,
                actor_id=r.actor_id,
                message=r.message,
                occurred_at=as_utc(r.occurred_at),
                details=dict(r.details or {}),
            )
            for r in rows
        ]
