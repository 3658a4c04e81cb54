"""Pytest configuration and fixtures for service layer tests."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session

from src.models import Product
from src.models.base import Base
from src.services.database import get_session_factory  # noqa: F401  (registers SQLite pragmas)


TENANT = "tenant-acme"
OTHER_TENANT = "tenant-globex"


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    engine = create_engine("sqlite:///:memory:", echo=False)

    Base.metadata.create_all(engine)

    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    import src.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    yield Session

    Session.remove()
    Base.metadata.drop_all(engine)
    engine.dispose()

    db_module.get_session_factory = original_get_session


@pytest.fixture(scope="function")
def make_product(test_db):
    """Factory fixture: create a product for a tenant and return its id."""

    def _make(name: str, tenant_id: str = TENANT, **fields) -> int:
        product = Product(tenant_id=tenant_id, name=name, **fields)
        test_db.add(product)
        test_db.flush()
        return product.id

    return _make


@pytest.fixture(scope="function")
def products(make_product):
    """Products A-E for the default tenant, keyed by name."""
    return {name: make_product(name) for name in ("A", "B", "C", "D", "E")}


@pytest.fixture(scope="function")
def kit(make_product):
    """The Kit / Widget / Gadget trio used in the composition scenarios."""

    class KitProducts:
        def __init__(self):
            self.kit = make_product("Kit", gtin="04006381333931", manufacturer="Acme")
            self.widget = make_product("Widget", category="Hardware")
            self.gadget = make_product("Gadget", category="Hardware")

    return KitProducts()
