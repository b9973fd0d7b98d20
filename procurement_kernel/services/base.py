"""
BaseService -- abstract base for kernel services, plus compare-and-set.

Responsibility:
    Provides the common constructor and session-handling contract for
    kernel services, and the conditional UPDATE used for every status
    transition and pointer swap in the procurement modules.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Kernel services flush within the caller's transaction and never
      commit or rollback themselves.  The module service owns the boundary.
    - A compare-and-set matches on id, the version the writer read and,
      for transitions, the status the writer expects.  It bumps version
      by one.  Stale writers update zero rows and are rejected.

Failure modes:
    - StateTransitionError when the stored status moved since it was read.
    - OptimisticLockError when only the version moved.
"""

from abc import ABC
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from procurement_kernel.db.base import Base, VersionedBase
from procurement_kernel.exceptions import (
    EntityNotFoundError,
    OptimisticLockError,
    StateTransitionError,
)
from procurement_kernel.logging_config import get_logger

logger = get_logger("services.base")

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Guarantees:
        The service never calls ``session.commit()`` or
        ``session.rollback()`` -- the caller controls transaction boundaries.
    """

    def __init__(self, session: Session):
        self.session = session


def compare_and_set(
    session: Session,
    model: type[VersionedBase],
    entity_id: UUID,
    *,
    read_version: int,
    values: dict[str, Any],
    expected_status: str | None = None,
) -> bool:
    """
    Conditionally update one row.

    Returns True if the row was updated (and its version bumped), False if
    the id/version/status predicate no longer matched.
    """
    stmt = update(model).where(
        model.id == entity_id,
        model.version == read_version,
    )
    if expected_status is not None:
        stmt = stmt.where(model.status == expected_status)
    stmt = stmt.values(**values, version=model.version + 1).execution_options(
        synchronize_session=False,
    )
    result = session.execute(stmt)
    return result.rowcount == 1


def transition_status(
    session: Session,
    model: type[VersionedBase],
    entity: VersionedBase,
    *,
    entity_type: str,
    to_status: str,
    extra_values: dict[str, Any] | None = None,
) -> None:
    """
    Move ``entity`` from the status it was read with to ``to_status``.

    The entity is refreshed from the database afterwards so the caller sees
    the new status and version.

    Raises:
        StateTransitionError: stored status differs from the one read.
        OptimisticLockError: status unchanged but version moved.
    """
    from_status = entity.status
    values: dict[str, Any] = {"status": to_status}
    if extra_values:
        values.update(extra_values)

    updated = compare_and_set(
        session,
        model,
        entity.id,
        read_version=entity.version,
        values=values,
        expected_status=from_status,
    )
    if not updated:
        raise_stale_write(session, model, entity, entity_type=entity_type, to_status=to_status)

    session.refresh(entity)
    logger.debug(
        "status_transitioned",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity.id),
            "from_status": from_status,
            "to_status": to_status,
            "version": entity.version,
        },
    )


def raise_stale_write(
    session: Session,
    model: type[VersionedBase],
    entity: VersionedBase,
    *,
    entity_type: str,
    to_status: str | None = None,
) -> None:
    """Diagnose a compare-and-set that matched no rows and raise accordingly."""
    current_version = session.execute(
        select(model.version).where(model.id == entity.id)
    ).scalar_one_or_none()
    if current_version is None:
        raise EntityNotFoundError(entity_type, str(entity.id))
    read_status = getattr(entity, "status", None)
    current_status = None
    if read_status is not None:
        current_status = session.execute(
            select(model.status).where(model.id == entity.id)
        ).scalar_one()
    logger.warning(
        "stale_write_rejected",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity.id),
            "read_status": read_status,
            "current_status": current_status,
            "read_version": entity.version,
            "current_version": current_version,
        },
    )
    if to_status is not None and current_status != read_status:
        raise StateTransitionError(
            entity_type,
            str(entity.id),
            current_status,
            to_status,
            f"status changed from {entity.status} to {current_status} concurrently",
        )
    raise OptimisticLockError(entity_type, str(entity.id))
