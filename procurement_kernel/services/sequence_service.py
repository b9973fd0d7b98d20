"""
Yearly document numbers: ``RFQ-2026-0001``, ``CQ-2026-0007``, ``PO-2026-0042``.

One counter row per (tenant, prefix, year), so numbering restarts every
January and two studios sharing a database never see each other's numbers.
The row is locked with ``SELECT ... FOR UPDATE`` while it is incremented;
the new value becomes visible when the caller commits and is handed back
if the caller rolls back. Numbers are never derived from ``MAX(...)`` over
the document tables.
"""

from sqlalchemy import Integer, String, UniqueConstraint, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, mapped_column

from procurement_kernel.db.base import Base
from procurement_kernel.logging_config import get_logger
from procurement_kernel.services.base import BaseService

logger = get_logger("services.sequence")


class DocumentCounter(Base):
    __tablename__ = "document_counters"
    __table_args__ = (
        UniqueConstraint("tenant_code", "prefix", "year", name="uq_document_counter"),
    )

    tenant_code: Mapped[str] = mapped_column(String(50))
    prefix: Mapped[str] = mapped_column(String(10))
    year: Mapped[int] = mapped_column(Integer)
    last_value: Mapped[int] = mapped_column(default=0)


def format_document_number(prefix: str, year: int, value: int, padding: int = 4) -> str:
    return f"{prefix}-{year:04d}-{value:0{padding}d}"


class SequenceService(BaseService[DocumentCounter]):
    """Allocates counter values inside the caller's transaction."""

    def _select(self, tenant_code: str, prefix: str, year: int, *, lock: bool):
        stmt = select(DocumentCounter).where(
            DocumentCounter.tenant_code == tenant_code,
            DocumentCounter.prefix == prefix,
            DocumentCounter.year == year,
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def _first_use(self, tenant_code: str, prefix: str, year: int) -> DocumentCounter | None:
        """Insert a fresh counter at 1; None if a concurrent writer beat us to it."""
        savepoint = self.session.begin_nested()
        try:
            counter = DocumentCounter(tenant_code=tenant_code, prefix=prefix, year=year, last_value=1)
            self.session.add(counter)
            self.session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("document_counter_insert_raced", extra={"prefix": prefix, "year": year})
            return None
        savepoint.commit()
        return counter

    def next_value(self, tenant_code: str, prefix: str, year: int) -> int:
        counter = self._select(tenant_code, prefix, year, lock=True)
        if counter is None:
            counter = self._first_use(tenant_code, prefix, year)
            if counter is None:
                counter = self._select(tenant_code, prefix, year, lock=True)
            else:
                logger.debug("document_number_allocated", extra={"prefix": prefix, "year": year, "value": 1})
                return 1

        counter.last_value += 1
        self.session.flush()
        logger.debug(
            "document_number_allocated",
            extra={"prefix": prefix, "year": year, "value": counter.last_value},
        )
        return counter.last_value

    def current_value(self, tenant_code: str, prefix: str, year: int) -> int | None:
        """Last value handed out, or None if the counter has never been used."""
        counter = self._select(tenant_code, prefix, year, lock=False)
        return None if counter is None else counter.last_value

    def next_document_number(
        self,
        *,
        tenant_code: str,
        prefix: str,
        year: int,
        padding: int = 4,
    ) -> str:
        value = self.next_value(tenant_code, prefix, year)
        return format_document_number(prefix, year, value, padding)
