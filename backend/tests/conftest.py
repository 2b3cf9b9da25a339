"""
Pytest fixtures for the warehouse ledger tests.

Provides an in-memory application, per-test table cleanup, reference data
and the bound ledger engine.
"""

import pytest

from wms import create_app
from wms.extensions import db
from wms.models import Product, Warehouse
from wms.services.ledger_engine import get_ledger


ACTOR_ID = 7
APPROVER_ID = 9


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def ledger(db_session):
    return get_ledger()


@pytest.fixture(scope='function')
def warehouse_a(db_session):
    warehouse = Warehouse(code="WH-A", name="Warehouse A")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def warehouse_b(db_session):
    warehouse = Warehouse(code="WH-B", name="Warehouse B")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def inactive_warehouse(db_session):
    warehouse = Warehouse(code="WH-OLD", name="Closed Warehouse", is_active=False)
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def product_a(db_session):
    product = Product(sku="SKU-A-001", name="Product A", purchase_price_cents=1250)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session):
    product = Product(sku="SKU-B-001", name="Product B", purchase_price_cents=800)
    db_session.add(product)
    db_session.commit()
    return product


def stock_in(ledger, warehouse, *lines, **kwargs):
    """Helper: book a STOCK_IN of (product, quantity) lines."""
    return ledger.create_stock_in(
        warehouse_id=warehouse.id,
        items=[{"product_id": p.id, "quantity": q} for p, q in lines],
        created_by=kwargs.pop("created_by", ACTOR_ID),
        **kwargs,
    )


def actor_headers(user_id: int = ACTOR_ID) -> dict:
    """Helper to create the gateway's actor header."""
    return {'X-User-Id': str(user_id)}
