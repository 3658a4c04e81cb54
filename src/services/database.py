"""
Database connection and session management for the product composition service.

This module provides:
- Database engine creation and configuration
- Session factory for database operations
- Database initialization (create tables)
- SQLite pragmas (foreign keys, WAL mode)
- Tenant-scoped write serialization for check-then-insert operations
"""

import hashlib
import logging
import threading
import weakref
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..utils.config import get_config
from ..models.base import Base

logger = logging.getLogger(__name__)

# Global engine and session factory
_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None

# Process-local tenant locks; an entry lives only while some session holds it
_tenant_locks: "weakref.WeakValueDictionary[str, threading.RLock]" = weakref.WeakValueDictionary()
_tenant_locks_guard = threading.Lock()
_HELD_TENANT_LOCKS = "product_composition.tenant_locks"


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """
    Set SQLite pragmas on connection.

    Enables foreign key constraints (product existence is enforced by the
    storage layer, not the service) and WAL mode. Non-SQLite connections
    are left untouched.
    """
    if type(dbapi_connection).__module__.split(".")[0] not in ("sqlite3", "pysqlite2"):
        return

    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_database_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """
    Create and configure the database engine.

    Args:
        database_url: Optional database URL. If None, uses config default.
        echo: If True, log all SQL statements. If None, uses config default.

    Returns:
        Configured SQLAlchemy Engine
    """
    config = get_config()
    if database_url is None:
        config.ensure_directories()
        database_url = config.database_url
    if echo is None:
        echo = config.echo_sql

    logger.info(f"Creating database engine: {database_url}")

    if database_url.startswith("sqlite"):
        if ":memory:" in database_url or "mode=memory" in database_url:
            # In-memory databases (testing) need a single shared connection
            return create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def init_database(engine: Optional[Engine] = None) -> None:
    """
    Initialize the database by creating all tables.

    Safe to call multiple times - existing tables won't be recreated.

    Args:
        engine: Optional engine to use. If None, uses global engine.
    """
    if engine is None:
        engine = get_engine()

    logger.info("Initializing database tables")

    # Register models with Base before create_all()
    from ..models import product, product_component  # noqa: F401

    Base.metadata.create_all(engine)

    logger.info("Database tables initialized successfully")


def get_engine(force_recreate: bool = False) -> Engine:
    """
    Get the global database engine.

    Args:
        force_recreate: If True, recreate the engine even if one exists

    Returns:
        Database engine
    """
    global _engine

    if _engine is None or force_recreate:
        _engine = create_database_engine()

    return _engine


def get_session_factory() -> sessionmaker:
    """
    Get the global session factory.

    Returns:
        Session factory (sessionmaker)
    """
    global _SessionFactory

    if _SessionFactory is None:
        engine = get_engine()
        _SessionFactory = sessionmaker(bind=engine, expire_on_commit=False)

    return _SessionFactory


def get_session() -> Session:
    """
    Create a new database session.

    Returns:
        New Session instance
    """
    session_factory = get_session_factory()
    return session_factory()


@contextmanager
def session_scope():
    """
    Provide a transactional scope for database operations.

    This context manager handles session lifecycle automatically:
    - Creates a new session
    - Commits on success
    - Rolls back on exception
    - Always closes the session

    Yields:
        Database session

    Example:
        with session_scope() as session:
            edge = ProductComponent(...)
            session.add(edge)
            # Commit happens automatically if no exception
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def tenant_lock_key(tenant_id: str) -> int:
    """
    Map a tenant id to a stable signed 64-bit advisory lock key.

    Python's hash() is salted per process, so a digest is used instead to
    give every service instance the same key for the same tenant.
    """
    digest = hashlib.blake2b(tenant_id.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, byteorder="big", signed=True)


def _process_tenant_lock(tenant_id: str) -> threading.RLock:
    with _tenant_locks_guard:
        lock = _tenant_locks.get(tenant_id)
        if lock is None:
            lock = threading.RLock()
            _tenant_locks[tenant_id] = lock
        return lock


@event.listens_for(Session, "after_transaction_end")
def _release_tenant_locks(session, transaction):
    """Release process-local tenant locks once the root transaction ends."""
    if transaction.parent is not None:
        return
    for lock in reversed(session.info.pop(_HELD_TENANT_LOCKS, [])):
        lock.release()


def _begin_immediate(connection) -> None:
    """Open the SQLite transaction with the database write lock taken."""
    dbapi_connection = connection.connection.dbapi_connection
    # A transaction already writing holds the write lock
    if not getattr(dbapi_connection, "in_transaction", True):
        connection.exec_driver_sql("BEGIN IMMEDIATE")


def _hold_tenant_lock(session: Session, tenant_id: str) -> None:
    # Starts the session transaction so the release hook always fires
    connection = session.connection()

    lock = _process_tenant_lock(tenant_id)
    lock.acquire()
    session.info.setdefault(_HELD_TENANT_LOCKS, []).append(lock)

    dialect = connection.dialect.name
    if dialect == "postgresql":
        connection.execute(
            text("SELECT pg_advisory_xact_lock(:key)"), {"key": tenant_lock_key(tenant_id)}
        )
    elif dialect == "sqlite":
        _begin_immediate(connection)
    logger.debug(f"Acquired composition write lock for tenant {tenant_id}")


@contextmanager
def tenant_write_scope(tenant_id: str):
    """
    Transactional scope that serializes graph-changing writes for one tenant.

    Equivalent to ``session_scope()`` plus ``tenant_write_lock()``: the lock
    is taken before the first read and released after the commit or
    rollback.

    Args:
        tenant_id: Tenant whose composition graph is being changed

    Yields:
        Database session (committed on success, rolled back on exception)
    """
    with session_scope() as session:
        _hold_tenant_lock(session, tenant_id)
        yield session


@contextmanager
def tenant_write_lock(session: Session, tenant_id: str):
    """
    Serialize graph-changing writes on a caller-owned session.

    The lock belongs to the session's transaction, not to the block: it is
    held until the caller commits, rolls back or closes the session, so a
    check made inside the block stays valid until its write is committed.

    - PostgreSQL: ``pg_advisory_xact_lock`` on ``tenant_lock_key(tenant_id)``,
      shared by every process using the database.
    - SQLite: the transaction is opened with ``BEGIN IMMEDIATE``, so writers
      in other processes wait for the database write lock.
    - Every dialect: a per-tenant lock in this process, re-entrant for the
      thread that holds it.

    Args:
        session: Session whose transaction will perform the write
        tenant_id: Tenant whose composition graph is being changed

    Yields:
        None
    """
    _hold_tenant_lock(session, tenant_id)
    yield


def verify_database() -> bool:
    """
    Verify that the database is accessible and has the composition tables.

    Returns:
        True if database is valid, False otherwise
    """
    try:
        engine = get_engine()
        tables = inspect(engine).get_table_names()
        return "product_components" in tables and "products" in tables
    except Exception as e:
        logger.error(f"Database verification failed: {e}")
        return False


def reset_database(confirm: bool = False) -> None:
    """
    Drop all tables and recreate the database.

    WARNING: This will delete all data!

    Args:
        confirm: Must be True to actually reset. Safety check.

    Raises:
        ValueError: If confirm is not True
    """
    if not confirm:
        raise ValueError("Must pass confirm=True to reset database. This will delete all data!")

    logger.warning("RESETTING DATABASE - ALL DATA WILL BE LOST")

    engine = get_engine()

    from ..models import product, product_component  # noqa: F401

    Base.metadata.drop_all(engine)
    logger.info("All tables dropped")

    Base.metadata.create_all(engine)
    logger.info("Tables recreated")


def close_connections() -> None:
    """
    Close all database connections.

    Useful for cleanup or before application exit.
    """
    global _engine, _SessionFactory

    _SessionFactory = None

    if _engine is not None:
        _engine.dispose()
        _engine = None

    logger.info("Database connections closed")


def initialize_app_database() -> None:
    """
    Initialize the application database.

    Creates the database and tables if they don't exist, then verifies them.
    """
    config = get_config()

    if not config.database_exists():
        logger.info(f"Creating new database at: {config.database_path}")
    else:
        logger.info(f"Using database: {config.database_url}")

    engine = get_engine()
    init_database(engine)

    if verify_database():
        logger.info("Database initialized and verified successfully")
    else:
        logger.warning("Database verification failed - tables may not exist")
