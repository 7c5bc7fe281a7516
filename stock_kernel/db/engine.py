"""
Engine and session management for the stock kernel.

One process-wide engine is built by ``init_engine_from_url``; everything
else (sessions, ``session_scope``, table creation) hangs off it.

Dialects:
    PostgreSQL
        READ COMMITTED, pooled connections.  Code that needs more than that
        takes row locks explicitly with ``SELECT ... FOR UPDATE``.
    SQLite
        Used by local runs and the test suite.  The driver's own transaction
        handling is switched off and every transaction starts with
        ``BEGIN IMMEDIATE``, so writers queue on the database lock and
        SAVEPOINTs behave.  ``pool_timeout`` doubles as the lock wait.

Calling any accessor before ``init_engine_from_url`` raises RuntimeError.
"""

import atexit
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from stock_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_current_engine: Engine | None = None
_make_session: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Database engine is not initialized; call init_engine_from_url()"


def _take_over_sqlite_transactions(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _configure_connection(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Build the process-wide engine and its session factory.

    Calling it again replaces both.  Pool settings other than
    ``pool_timeout`` only apply to server databases.

    Args:
        database_url: ``postgresql://...`` or ``sqlite:///path.db``.
        echo: Emit every SQL statement through SQLAlchemy's logger.
        pool_timeout: Seconds to wait for a pooled connection (PostgreSQL)
            or for the write lock (SQLite).
    """
    global _current_engine, _make_session

    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": pool_timeout, "check_same_thread": False},
        )
        _take_over_sqlite_transactions(engine)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _current_engine = engine
    _make_session = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": engine.dialect.name, "pool_size": pool_size, "echo": echo},
    )
    return engine


def get_engine() -> Engine:
    if _current_engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _current_engine


def get_session_factory() -> sessionmaker[Session]:
    """Session factory bound to the engine; threads each build their own session."""
    if _make_session is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _make_session


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """
    Run a block in one transaction.

    Commits when the block finishes, rolls back and re-raises when it
    raises, and always closes the session::

        with session_scope() as session:
            StockLedger(session, auditor).adjust(...)
    """
    session = (factory or get_session_factory())()
    logger.debug("session_scope_opened")
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_scope_rolled_back", exc_info=True)
        raise
    else:
        logger.debug("session_scope_committed")
    finally:
        session.close()


def create_tables() -> None:
    """Create every mapped table that does not exist yet."""
    from stock_kernel.db.base import Base
    import stock_kernel.models  # noqa: F401
    import stock_kernel.services.sequence_service  # noqa: F401

    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables() -> None:
    """Drop every mapped table.  Test and dev use only."""
    from stock_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _current_engine, _make_session

    if _current_engine is not None:
        _current_engine.dispose()
    _current_engine = None
    _make_session = None


@atexit.register
def _dispose_on_exit() -> None:
    if _current_engine is not None:
        _current_engine.dispose()
