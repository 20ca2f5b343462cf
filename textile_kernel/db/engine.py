"""
Module: textile_kernel.db.engine
Responsibility: SQLAlchemy engine construction, the transactional scope
    (unit of work) used by every mutating operation, and schema lifecycle
    helpers.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from services/, selectors/, or domain/ (create_tables imports
    models lazily so Base.metadata is complete).

Invariants enforced:
    - PostgreSQL (live store): READ COMMITTED with explicit row-level locking
      (SELECT ... FOR UPDATE) on every obligation / stock read-modify-write.
    - SQLite (fixture store): every transaction starts with BEGIN IMMEDIATE,
      so writers serialize at the database level.  SQLite ignores FOR UPDATE;
      the immediate lock gives the same lost-update protection.
    - session_scope() is the recovery boundary: commit on success, full
      rollback on any exception.  There is no partial-commit path.

Failure modes:
    - PersistenceError when an unexpected SQLAlchemyError escapes a unit of
      work (the session is rolled back first, the error is logged).
    - Kernel errors (TextileKernelError) are re-raised unchanged after
      rollback.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from textile_kernel.exceptions import PersistenceError, TextileKernelError
from textile_kernel.logging_config import get_logger

logger = get_logger("db.engine")

SQLITE_MEMORY_URL = "sqlite+pysqlite:///:memory:"


def is_sqlite_url(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def with_postgres_driver(database_url: str) -> URL:
    """Pin a bare postgresql:// URL to psycopg2, the installed driver."""
    url = make_url(database_url)
    if url.drivername == "postgresql":
        url = url.set(drivername="postgresql+psycopg2")
    return url


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_busy_timeout: float = 30.0,
) -> Engine:
    """
    Build an engine for a PostgreSQL or SQLite database URL.

    Args:
        database_url: SQLAlchemy URL (postgresql://... or sqlite+pysqlite://...).
        echo: If True, log all SQL statements.
        pool_size: Connections to keep in the pool (PostgreSQL only).
        max_overflow: Max connections beyond pool_size (PostgreSQL only).
        pool_pre_ping: Test connections before use (PostgreSQL only).
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.
        sqlite_busy_timeout: Seconds a SQLite writer waits for the lock.

    Returns:
        SQLAlchemy Engine instance.
    """
    if is_sqlite_url(database_url):
        engine = _build_sqlite_engine(database_url, echo, sqlite_busy_timeout)
        dialect = "sqlite"
    else:
        engine = create_engine(
            with_postgres_driver(database_url),
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )
        dialect = engine.dialect.name

    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )
    return engine


def _build_sqlite_engine(database_url: str, echo: bool, busy_timeout: float) -> Engine:
    in_memory = make_url(database_url).database in (None, "", ":memory:")
    kwargs: dict = {
        "echo": echo,
        "connect_args": {"check_same_thread": False, "timeout": busy_timeout},
    }
    if in_memory:
        # One shared connection, otherwise each checkout sees an empty database
        kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Take transaction control away from pysqlite so BEGIN, SAVEPOINT and
        # RELEASE are emitted exactly when SQLAlchemy asks for them.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, the session is committed and closed.
        On exception, the session is rolled back and closed.  Kernel errors
        propagate unchanged; any other SQLAlchemyError is wrapped in
        PersistenceError.

    Usage:
        with session_scope(factory) as session:
            recorder = TransactionRecorder(session)
            recorder.record_transaction(...)
    """
    session = session_factory()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except TextileKernelError:
        session.rollback()
        logger.info("transaction_rolled_back", exc_info=True)
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("transaction_rolled_back", exc_info=True)
        raise PersistenceError("unit_of_work", str(exc)) from exc
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine) -> None:
    """
    Create all tables defined in the models.

    All ORM models are imported first so Base.metadata contains every table.
    """
    from textile_kernel.db.base import Base
    import textile_kernel.models  # noqa: F401

    Base.metadata.create_all(engine)
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables(engine: Engine) -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from textile_kernel.db.base import Base
    import textile_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine)
