"""
Tests for stock reporting and log/store reconciliation.
"""

import pytest
from sqlalchemy import update

from wms.errors import NotFoundError, ValidationError
from wms.models import Category, StockRecord
from wms.services.reporting_service import (
    list_inventory,
    replay_stock,
    stock_report,
    verify_stock_consistency,
)

from tests.conftest import ACTOR_ID, APPROVER_ID, stock_in


def test_report_totals_and_low_stock(ledger, db_session, warehouse_a, warehouse_b, product_a, product_b):
    stock_in(ledger, warehouse_a, (product_a, 25), (product_b, 3))
    stock_in(ledger, warehouse_b, (product_a, 9))

    report = stock_report()

    assert report["total_stock"] == 37
    assert report["low_stock_threshold"] == 10
    assert report["low_stock_items"] == 2
    assert [(row["warehouse_id"], row["sku"]) for row in report["items"]] == [
        (warehouse_a.id, "SKU-A-001"),
        (warehouse_a.id, "SKU-B-001"),
        (warehouse_b.id, "SKU-A-001"),
    ]


def test_report_for_one_warehouse_with_custom_threshold(ledger, warehouse_a, warehouse_b, product_a, product_b):
    stock_in(ledger, warehouse_a, (product_a, 25), (product_b, 3))
    stock_in(ledger, warehouse_b, (product_a, 9))

    report = stock_report(warehouse_id=warehouse_a.id, low_stock_threshold=30)

    assert report["total_stock"] == 28
    assert report["low_stock_items"] == 2
    assert {row["warehouse"] for row in report["items"]} == {"Warehouse A"}


def test_report_includes_category_name(ledger, db_session, warehouse_a, product_a):
    category = Category(name="Beverages")
    db_session.add(category)
    db_session.commit()
    product_a.category_id = category.id
    db_session.commit()

    stock_in(ledger, warehouse_a, (product_a, 1))

    assert stock_report()["items"][0]["category"] == "Beverages"


def test_empty_report(db_session):
    report = stock_report()
    assert report["total_stock"] == 0
    assert report["low_stock_items"] == 0
    assert report["items"] == []


def test_replay_ignores_pending_and_rejected(ledger, warehouse_a, warehouse_b, product_a):
    stock_in(ledger, warehouse_a, (product_a, 10))
    pending = ledger.create_transfer(
        source_warehouse_id=warehouse_a.id,
        target_warehouse_id=warehouse_b.id,
        items=[{"product_id": product_a.id, "quantity": 2}],
        created_by=ACTOR_ID,
    )
    rejected = ledger.create_transfer(
        source_warehouse_id=warehouse_a.id,
        target_warehouse_id=warehouse_b.id,
        items=[{"product_id": product_a.id, "quantity": 3}],
        created_by=ACTOR_ID,
    )
    ledger.reject_transfer(rejected.id, APPROVER_ID, "Not needed")

    assert replay_stock() == {(product_a.id, warehouse_a.id): 10}

    ledger.approve_transfer(pending.id, APPROVER_ID)

    assert replay_stock() == {
        (product_a.id, warehouse_a.id): 8,
        (product_a.id, warehouse_b.id): 2,
    }
    assert verify_stock_consistency() == []


def test_verify_detects_out_of_band_write(ledger, db_session, warehouse_a, product_a):
    stock_in(ledger, warehouse_a, (product_a, 10))

    db_session.execute(
        update(StockRecord)
        .where(StockRecord.product_id == product_a.id)
        .values(quantity=12)
    )
    db_session.commit()

    assert verify_stock_consistency() == [{
        "product_id": product_a.id,
        "warehouse_id": warehouse_a.id,
        "expected": 10,
        "actual": 12,
    }]


@pytest.mark.parametrize("threshold", ["abc", 1.5])
def test_report_rejects_bad_threshold(db_session, threshold):
    with pytest.raises(ValidationError):
        stock_report(low_stock_threshold=threshold)


class TestListInventory:
    @pytest.fixture(autouse=True)
    def _seed(self, ledger, db_session, warehouse_a, warehouse_b, product_a, product_b):
        category = Category(name="Snacks")
        db_session.add(category)
        db_session.commit()
        product_b.category_id = category.id
        db_session.commit()
        self.category_id = category.id

        stock_in(ledger, warehouse_a, (product_a, 5), (product_b, 2))
        stock_in(ledger, warehouse_b, (product_a, 1))

    def test_all_rows_with_details(self):
        result = list_inventory()

        assert result["total"] == 3
        assert result["page"] == 1
        assert result["limit"] == 10
        assert result["total_pages"] == 1
        row = next(r for r in result["data"] if r["product"]["sku"] == "SKU-B-001")
        assert row["quantity"] == 2
        assert row["product"]["category"] == "Snacks"
        assert row["warehouse"]["code"] == "WH-A"

    def test_filters(self, warehouse_a, warehouse_b):
        assert list_inventory(warehouse_id=warehouse_b.id)["total"] == 1
        assert list_inventory(category_id=self.category_id)["total"] == 1
        assert list_inventory(warehouse_id=warehouse_a.id, search="product")["total"] == 2
        assert list_inventory(search="b-001")["total"] == 1
        assert list_inventory(search="nothing-matches")["total"] == 0

    def test_pagination(self):
        first = list_inventory(page=1, limit=2)
        second = list_inventory(page=2, limit=2)

        assert first["total"] == second["total"] == 3
        assert first["total_pages"] == 2
        assert len(first["data"]) == 2
        assert len(second["data"]) == 1
        seen = {r["id"] for r in first["data"]} | {r["id"] for r in second["data"]}
        assert len(seen) == 3

    def test_unknown_warehouse_is_not_found(self):
        with pytest.raises(NotFoundError):
            list_inventory(warehouse_id=424242)
