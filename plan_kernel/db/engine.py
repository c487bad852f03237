"""
Engine and session management for the plan ledger.

One process-wide engine, built by ``init_engine_from_url``.  Both backends
close the read-then-reserve window on a budget line:

* PostgreSQL runs at READ COMMITTED and the services lock the budget line
  row with ``SELECT ... FOR UPDATE``.
* SQLite opens every transaction with ``BEGIN IMMEDIATE`` so the write
  lock is held before the capacity read; writers serialise.  Foreign keys
  are switched on per connection.

A SQLite writer that waits past the busy timeout gets
``OperationalError("database is locked")``.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from plan_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

# Module-level engine and session factory
_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _install_sqlite_listeners(engine: Engine) -> None:
    """
    Take over transaction control from the sqlite3 driver.

    The driver's own implicit BEGIN is disabled so that the "begin" event
    can emit BEGIN IMMEDIATE.  SAVEPOINT works normally on top of this.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_busy_timeout: int = 30,
) -> Engine:
    """
    Build (but do not register) an engine for the given URL.

    PostgreSQL gets a QueuePool at READ COMMITTED.  SQLite gets a busy
    timeout, cross-thread connections and the BEGIN IMMEDIATE listeners.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={
                "timeout": sqlite_busy_timeout,
                "check_same_thread": False,
            },
        )
        _install_sqlite_listeners(engine)
        return engine

    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


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
    Build the process-wide engine and session factory.

    Calling it again replaces both.  Also registers the ORM immutability
    listeners and makes sure ``plan_kernel`` logging is configured.
    Pool arguments only apply to PostgreSQL.
    """
    global _engine, _SessionFactory

    _engine = create_engine_from_url(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
    )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    from plan_kernel.db.immutability import register_immutability_listeners

    register_immutability_listeners()

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )
    return _engine


def _require_factory() -> sessionmaker[Session]:
    if _SessionFactory is None:
        raise RuntimeError("No database engine; call init_engine_from_url() first")
    return _SessionFactory


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("No database engine; call init_engine_from_url() first")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Sessions are not thread-safe: concurrent callers each take their own."""
    return _require_factory()


def get_session() -> Session:
    return _require_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    ``with session_scope() as session:`` commits when the block finishes
    and rolls back (then re-raises) when it raises.  The session is always
    closed.
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_scope_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def import_all_models() -> None:
    """Populate ``Base.metadata`` with every table of the ledger."""
    import plan_kernel.models  # noqa: F401
    import plan_kernel.services.sequence_service  # noqa: F401
    import plan_modules.quarantine.orm  # noqa: F401


def create_tables(engine: Engine | None = None) -> None:
    """Create the ledger schema on ``engine`` (default: the process engine)."""
    from plan_kernel.db.base import Base

    engine = engine or get_engine()
    import_all_models()
    Base.metadata.create_all(engine)
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables(engine: Engine | None = None) -> None:
    """Drop the ledger schema.  Test suites only."""
    from plan_kernel.db.base import Base

    engine = engine or get_engine()
    import_all_models()
    Base.metadata.drop_all(engine)


def reset_engine() -> None:
    """Dispose the process engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
