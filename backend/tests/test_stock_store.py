"""
Stock store tests: lazy creation, atomic increase/decrease, floor at zero.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from wms.errors import InsufficientStockError, ValidationError
from wms.extensions import db
from wms.models import StockRecord
from wms.services.stock_store import SQLAlchemyStockStore


@pytest.fixture
def store(db_session):
    return SQLAlchemyStockStore()


def test_missing_record_reads_as_zero(store, product_a, warehouse_a):
    assert store.get(product_a.id, warehouse_a.id) == 0
    assert store.breakdown(product_a.id) == {}


def test_increase_creates_then_adds(store, db_session, product_a, warehouse_a):
    store.increase(product_a.id, warehouse_a.id, 5)
    assert db_session.query(StockRecord).count() == 1

    store.increase(product_a.id, warehouse_a.id, 3)
    db_session.commit()

    assert store.get(product_a.id, warehouse_a.id) == 8
    assert db_session.query(StockRecord).count() == 1


def test_decrease_subtracts(store, db_session, product_a, warehouse_a):
    store.increase(product_a.id, warehouse_a.id, 10)
    store.decrease(product_a.id, warehouse_a.id, 4)
    db_session.commit()

    assert store.get(product_a.id, warehouse_a.id) == 6


def test_decrease_to_exactly_zero_is_allowed(store, db_session, product_a, warehouse_a):
    store.increase(product_a.id, warehouse_a.id, 3)
    store.decrease(product_a.id, warehouse_a.id, 3)
    db_session.commit()

    assert store.get(product_a.id, warehouse_a.id) == 0


def test_decrease_below_zero_raises_typed_error(store, db_session, product_a, warehouse_a):
    store.increase(product_a.id, warehouse_a.id, 5)

    with pytest.raises(InsufficientStockError) as exc_info:
        store.decrease(product_a.id, warehouse_a.id, 6)

    err = exc_info.value
    assert err.product_id == product_a.id
    assert err.warehouse_id == warehouse_a.id
    assert err.requested == 6
    assert err.available == 5
    assert store.get(product_a.id, warehouse_a.id) == 5


def test_decrease_on_missing_record_raises(store, product_a, warehouse_a):
    with pytest.raises(InsufficientStockError) as exc_info:
        store.decrease(product_a.id, warehouse_a.id, 1)
    assert exc_info.value.available == 0


@pytest.mark.parametrize("amount", [0, -1, 1.5, True, "3"])
def test_non_positive_or_non_integer_amounts_rejected(store, product_a, warehouse_a, amount):
    with pytest.raises(ValidationError):
        store.increase(product_a.id, warehouse_a.id, amount)
    with pytest.raises(ValidationError):
        store.decrease(product_a.id, warehouse_a.id, amount)


def test_breakdown_lists_each_warehouse(store, db_session, product_a, warehouse_a, warehouse_b):
    store.increase(product_a.id, warehouse_a.id, 2)
    store.increase(product_a.id, warehouse_b.id, 9)
    db_session.commit()

    assert store.breakdown(product_a.id) == {warehouse_a.id: 2, warehouse_b.id: 9}


def test_check_constraint_rejects_negative_rows(db_session, product_a, warehouse_a):
    db_session.add(StockRecord(product_id=product_a.id, warehouse_id=warehouse_a.id, quantity=-1))
    with pytest.raises(IntegrityError):
        db_session.flush()
    db.session.rollback()
