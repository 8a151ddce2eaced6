"""
Module: mfg_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    transactional scope utilities and transaction timeout handling.  This is
    the single point of database connection configuration for the system.
Architecture position: Kernel > DB.  May import from db/base.py.
    MUST NOT import from services/, selectors/, domain/, or outer layers
    (except create_tables/drop_tables which import models).

Invariants enforced:
    - One injected store handle: the engine is opened once by
      init_engine_from_url() and disposed by reset_engine() / process exit.
      Components receive sessions; they never construct engines.
    - PostgreSQL sessions run at READ COMMITTED with explicit row-level
      locking (SELECT ... FOR UPDATE) on orders, order items, stock rows
      and sequence counters.
    - SQLite (local and test use) opens every transaction with
      BEGIN IMMEDIATE, so writers serialize on the database lock.  This is
      the SQLite stand-in for row-level locks.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory called before
      init_engine_from_url().
    - OperationalError on lock wait / statement timeout; callers translate it
      with is_lock_timeout() into TransactionTimeoutError.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from mfg_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

# PostgreSQL SQLSTATEs raised by lock_timeout / statement_timeout
_PG_TIMEOUT_CODES = frozenset({"55P03", "57014"})


def _install_sqlite_listeners(engine: Engine) -> None:
    """Hand transaction control to SQLAlchemy and take the write lock eagerly."""

    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    lock_wait_seconds: float = 10.0,
) -> Engine:
    """
    Initialize the SQLAlchemy engine from a database URL.

    Postconditions: Module-level _engine and _SessionFactory are initialized.
        A second call replaces the first.

    Args:
        database_url: PostgreSQL or SQLite URL.
        echo: If True, log all SQL statements.
        pool_size: Number of connections to keep in the pool.
        max_overflow: Max connections beyond pool_size.
        pool_pre_ping: If True, test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.
        lock_wait_seconds: SQLite busy timeout (how long a writer waits for
            the database lock before failing with "database is locked").

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    if database_url.startswith("sqlite"):
        dialect = "sqlite"
        in_memory = database_url in ("sqlite://", "sqlite:///:memory:")
        pool_kwargs = (
            {"poolclass": StaticPool}
            if in_memory
            else {
                "poolclass": QueuePool,
                "pool_size": pool_size,
                "max_overflow": max_overflow,
                "pool_timeout": pool_timeout,
            }
        )
        _engine = create_engine(
            database_url,
            echo=echo,
            connect_args={
                "check_same_thread": False,
                "timeout": lock_wait_seconds,
            },
            **pool_kwargs,
        )
        _install_sqlite_listeners(_engine)
    else:
        dialect = "postgresql"
        _engine = create_engine(
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

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )

    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Get a new session instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory for creating sessions.

    Useful for multi-threaded callers where each thread needs its own session.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    On normal exit the session is committed and closed.  On exception it is
    rolled back and closed, and the exception is re-raised.

    Usage:
        with session_scope() as session:
            OrderService(session, clock).create_order(...)
    """
    session = get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def apply_transaction_timeout(session: Session, timeout_seconds: float) -> None:
    """
    Bound lock waits and statements of the current transaction.

    PostgreSQL: SET LOCAL lock_timeout / statement_timeout, scoped to the
    transaction.  SQLite: no-op, the busy timeout is fixed per connection
    (see lock_wait_seconds).
    """
    bind = session.get_bind()
    if bind.dialect.name != "postgresql":
        return
    ms = int(timeout_seconds * 1000)
    session.execute(text(f"SET LOCAL lock_timeout = {ms}"))
    session.execute(text(f"SET LOCAL statement_timeout = {ms}"))


def is_lock_timeout(exc: OperationalError) -> bool:
    """True if the OperationalError is a lock wait or statement timeout."""
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode in _PG_TIMEOUT_CODES:
        return True
    return "database is locked" in str(exc.orig)


def create_tables() -> None:
    """
    Create all tables defined in the models.

    Preconditions: Engine must be initialized via init_engine_from_url().
    """
    from mfg_kernel.db.base import Base

    import mfg_kernel.models  # noqa: F401 -- registers mappers on Base.metadata
    import mfg_kernel.services.sequence_service  # noqa: F401 -- sequence_counters

    engine = get_engine()
    Base.metadata.create_all(engine)
    logger.info(
        "tables_created",
        extra={"table_count": len(Base.metadata.tables)},
    )


def drop_tables() -> None:
    """
    Drop all tables. Use with caution - primarily for testing.
    """
    from mfg_kernel.db.base import Base

    import mfg_kernel.models  # noqa: F401
    import mfg_kernel.services.sequence_service  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """
    Reset the engine and session factory.

    Useful for test cleanup.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    """Dispose the engine on process exit to release all pooled connections."""
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)


def is_postgres() -> bool:
    """Check if the current engine is PostgreSQL."""
    if _engine is None:
        return False
    return _engine.dialect.name == "postgresql"
