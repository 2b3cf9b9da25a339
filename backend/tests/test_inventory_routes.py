"""
HTTP API tests for inventory listing and product create/update.
"""

from wms.models import Product, Transaction

from tests.conftest import actor_headers, stock_in


def test_list_inventory(client, ledger, warehouse_a, warehouse_b, product_a, product_b):
    stock_in(ledger, warehouse_a, (product_a, 5), (product_b, 2))
    stock_in(ledger, warehouse_b, (product_a, 1))

    response = client.get(f"/api/inventory?warehouse_id={warehouse_a.id}&search=sku-a", headers=actor_headers())

    assert response.status_code == 200
    body = response.get_json()
    assert body["total"] == 1
    row = body["data"][0]
    assert row["quantity"] == 5
    assert row["product"]["sku"] == "SKU-A-001"
    assert row["warehouse"]["code"] == "WH-A"


def test_list_inventory_unknown_warehouse_is_404(client, db_session):
    response = client.get("/api/inventory?warehouse_id=424242", headers=actor_headers())
    assert response.status_code == 404


def test_create_product_with_opening_stock(client, ledger, db_session, warehouse_a):
    response = client.post("/api/inventory/products", json={
        "sku": "API-001",
        "name": "Api Product",
        "purchase_price": "2.75",
        "initial_stock": 8,
        "warehouse_id": warehouse_a.id,
    }, headers=actor_headers())

    assert response.status_code == 201
    body = response.get_json()
    assert body["purchase_price_cents"] == 275
    assert ledger.get_stock(body["id"], warehouse_a.id) == 8
    assert db_session.query(Transaction).one().created_by == 7


def test_create_product_with_bad_warehouse_leaves_nothing(client, db_session):
    response = client.post("/api/inventory/products", json={
        "sku": "API-002",
        "name": "Orphan",
        "initial_stock": 3,
        "warehouse_id": 424242,
    }, headers=actor_headers())

    assert response.status_code == 404
    assert db_session.query(Product).filter_by(sku="API-002").count() == 0


def test_duplicate_sku_is_409(client, product_a):
    response = client.post(
        "/api/inventory/products", json={"sku": product_a.sku, "name": "Again"}, headers=actor_headers()
    )
    assert response.status_code == 409
    assert response.get_json()["retryable"] is True


def test_get_and_update_product(client, product_a):
    response = client.put(
        f"/api/inventory/products/{product_a.sku}",
        json={"name": "Product A v2", "purchase_price": "13.00"},
        headers=actor_headers(),
    )
    assert response.status_code == 200
    assert response.get_json()["name"] == "Product A v2"

    fetched = client.get(f"/api/inventory/products/{product_a.sku}", headers=actor_headers()).get_json()
    assert fetched["purchase_price_cents"] == 1300
    assert fetched["sku"] == "SKU-A-001"


def test_update_cannot_change_sku(client, product_a):
    response = client.put(
        f"/api/inventory/products/{product_a.sku}", json={"sku": "SKU-NEW"}, headers=actor_headers()
    )
    assert response.status_code == 422
    assert client.get("/api/inventory/products/SKU-NEW", headers=actor_headers()).status_code == 404
