"""
Tests for concurrent composition writes on a file-backed SQLite database.

Tests cover:
- Racing reverse edges through service-owned transactions
- Racing reverse edges through caller-owned sessions
- Tenant lock lifetime on caller-owned sessions
"""

import threading
import time

import pytest
from sqlalchemy.orm import sessionmaker

from src.models import Product
from src.models.base import Base
from src.services import database as db_module
from src.services.composition_service import add_component, check_composition_integrity
from src.services.database import create_database_engine, tenant_write_lock
from src.services.exceptions import CycleError
from src.tests.conftest import TENANT


@pytest.fixture
def file_db(tmp_path, monkeypatch):
    """A database file shared by every thread, one session per unit of work."""
    engine = create_database_engine(f"sqlite:///{tmp_path / 'compositions.db'}", echo=False)
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    monkeypatch.setattr(db_module, "get_session_factory", lambda: factory)

    yield factory

    engine.dispose()


@pytest.fixture
def pair(file_db):
    """Two committed products, returned as (a_id, b_id)."""
    session = file_db()
    a = Product(tenant_id=TENANT, name="A")
    b = Product(tenant_id=TENANT, name="B")
    session.add_all([a, b])
    session.commit()
    ids = (a.id, b.id)
    session.close()
    return ids


def run_threads(*targets):
    threads = [threading.Thread(target=target) for target in targets]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    assert not any(thread.is_alive() for thread in threads)


def lock_free_elsewhere(tenant_id):
    """True if another thread can take the tenant's process lock right now."""
    results = []

    def attempt():
        lock = db_module._process_tenant_lock(tenant_id)
        acquired = lock.acquire(blocking=False)
        if acquired:
            lock.release()
        results.append(acquired)

    run_threads(attempt)
    return results[0]


class TestConcurrentReverseEdges:
    """Two writers adding A->B and B->A never both succeed."""

    def test_race_through_service_transactions(self, file_db, pair):
        """Service-owned units of work are serialized per tenant."""
        a, b = pair
        barrier = threading.Barrier(2)
        outcomes = []

        def add(parent_id, component_id):
            barrier.wait()
            try:
                add_component(TENANT, parent_id, component_id)
                outcomes.append("added")
            except CycleError:
                outcomes.append("cycle")

        run_threads(lambda: add(a, b), lambda: add(b, a))

        assert sorted(outcomes) == ["added", "cycle"]
        assert check_composition_integrity(TENANT).is_valid

    def test_race_through_caller_sessions(self, file_db, pair):
        """A second writer waits until the first caller commits."""
        a, b = pair
        first_added = threading.Event()
        outcomes = []

        def first():
            session = file_db()
            try:
                add_component(TENANT, a, b, session=session)
                first_added.set()
                time.sleep(0.3)
                session.commit()
                outcomes.append("added")
            finally:
                session.close()

        def second():
            first_added.wait(timeout=10)
            session = file_db()
            try:
                add_component(TENANT, b, a, session=session)
                session.commit()
                outcomes.append("added")
            except CycleError:
                session.rollback()
                outcomes.append("cycle")
            finally:
                session.close()

        run_threads(first, second)

        assert sorted(outcomes) == ["added", "cycle"]
        report = check_composition_integrity(TENANT)
        assert report.is_valid
        assert report.cycles == []


class TestCallerSessionLockLifetime:
    """tenant_write_lock belongs to the caller's transaction."""

    def test_held_until_commit(self, file_db, pair):
        """Leaving the block does not release the lock; committing does."""
        session = file_db()
        with tenant_write_lock(session, TENANT):
            pass

        assert not lock_free_elsewhere(TENANT)
        session.commit()
        assert lock_free_elsewhere(TENANT)
        session.close()

    def test_released_on_rollback(self, file_db, pair):
        """Rolling back releases the lock as well."""
        session = file_db()
        with tenant_write_lock(session, TENANT):
            pass

        session.rollback()
        assert lock_free_elsewhere(TENANT)
        session.close()

    def test_sqlite_write_lock_taken_up_front(self, file_db, pair):
        """The SQLite transaction is open before the first read."""
        session = file_db()
        with tenant_write_lock(session, TENANT):
            dbapi_connection = session.connection().connection.dbapi_connection
            assert dbapi_connection.in_transaction

        session.rollback()
        session.close()

    def test_other_tenants_not_blocked(self, file_db, pair):
        """Holding one tenant's lock leaves other tenants free."""
        session = file_db()
        with tenant_write_lock(session, TENANT):
            pass

        assert lock_free_elsewhere("tenant-initech")
        session.rollback()
        session.close()
