"""
Database connection for the procurement store.

One engine per process, set up by ``init_engine_from_url``. PostgreSQL is
the production backend; ``sqlite://`` is accepted for tests and local
demos. Concurrency control does not rely on the isolation level: status
changes are conditional UPDATEs on ``version`` and document numbers are
allocated from locked counter rows.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from procurement_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_NOT_READY = "Database not initialised; call init_engine_from_url() first."

_engine: Engine | None = None
_sessions: sessionmaker[Session] | None = None


def _on_sqlite_connect(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
    # Hand transaction control to SQLAlchemy so SAVEPOINT works.
    dbapi_connection.isolation_level = None


def _on_sqlite_begin(conn) -> None:
    conn.exec_driver_sql("BEGIN")


def _sqlite_engine(url: str, echo: bool) -> Engine:
    # One shared connection: an in-memory database lives only as long as it.
    engine = create_engine(
        url,
        echo=echo,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _on_sqlite_connect)
    event.listen(engine, "begin", _on_sqlite_begin)
    return engine


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
) -> Engine:
    """Create the process-wide engine and session factory.

    Calling it again replaces the previous engine without disposing it;
    call ``reset_engine`` first when switching databases.
    """
    global _engine, _sessions

    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        _engine = _sqlite_engine(database_url, echo)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            isolation_level="READ COMMITTED",
        )
    _sessions = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info("database_ready", extra={"backend": backend})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_READY)
    return _engine


def get_session() -> Session:
    """Open a new session; the caller owns commit/rollback and close."""
    if _sessions is None:
        raise RuntimeError(_NOT_READY)
    return _sessions()


def get_session_factory() -> sessionmaker[Session]:
    """For jobs such as the RFQ expiry sweep that open their own sessions."""
    if _sessions is None:
        raise RuntimeError(_NOT_READY)
    return _sessions


@contextmanager
def session_scope() -> Iterator[Session]:
    """Commit on success, roll back and re-raise on error, always close."""
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every kernel and module table that does not exist yet."""
    from procurement_kernel.db.base import Base
    from procurement_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables() -> None:
    """Drop every known table. Test teardown only."""
    from procurement_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _sessions
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _sessions = None


atexit.register(reset_engine)
