# backend/wms/routes/inventory.py
"""
Inventory routes: stock listing, per-product stock, the stock report and
product create/update.

Product creation may book opening stock (a STOCK_IN through the ledger);
product updates never touch the sku or stock.
"""
from flask import Blueprint, request, jsonify, g, current_app

from wms.decorators import require_actor
from wms.errors import LedgerError
from wms.services import reference_service, reporting_service
from wms.services.ledger_engine import get_ledger
from wms.validation import coerce_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _optional_int_arg(name: str):
    value = request.args.get(name)
    if value is None or value == "":
        return None
    return coerce_int(value, name)


@inventory_bp.route("", methods=["GET"])
@require_actor
def list_inventory():
    """
    Stock records with product and warehouse details, newest first.

    Query params: warehouse_id, category_id, search (sku or name),
    page (default 1), limit (default 10, max 100).
    """
    try:
        result = reporting_service.list_inventory(
            warehouse_id=_optional_int_arg("warehouse_id"),
            category_id=_optional_int_arg("category_id"),
            search=request.args.get("search") or None,
            page=request.args.get("page", 1),
            limit=request.args.get("limit", 10),
        )
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list inventory")
        return jsonify({"error": "Unexpected error"}), 500


@inventory_bp.route("/report", methods=["GET"])
@require_actor
def stock_report():
    """
    Stock levels with totals and low-stock count.

    Query params: warehouse_id (optional), threshold (optional).
    """
    try:
        warehouse_id = request.args.get("warehouse_id")
        threshold = request.args.get("threshold")
        report = reporting_service.stock_report(
            warehouse_id=coerce_int(warehouse_id, "warehouse_id") if warehouse_id else None,
            low_stock_threshold=threshold if threshold else None,
        )
        return jsonify(report), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build stock report")
        return jsonify({"error": "Unexpected error"}), 500


@inventory_bp.route("/<int:product_id>", methods=["GET"])
@require_actor
def get_stock(product_id: int):
    """
    Stock of one product.

    With ?warehouse_id=N returns {"product_id", "sku", "warehouse_id", "quantity"};
    without it returns {"product_id", "sku", "total", "warehouses": [{"warehouse_id", "quantity"}]}.
    """
    try:
        product = reference_service.get_product(product_id)
        warehouse_id = request.args.get("warehouse_id")
        if warehouse_id:
            warehouse_id = coerce_int(warehouse_id, "warehouse_id")
            quantity = get_ledger().get_stock(product.id, warehouse_id)
            return jsonify({
                "product_id": product.id,
                "sku": product.sku,
                "warehouse_id": warehouse_id,
                "quantity": quantity,
            }), 200

        breakdown = get_ledger().get_stock(product.id)
        return jsonify({
            "product_id": product.id,
            "sku": product.sku,
            "total": sum(breakdown.values()),
            "warehouses": [
                {"warehouse_id": wid, "quantity": qty} for wid, qty in breakdown.items()
            ],
        }), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load stock")
        return jsonify({"error": "Unexpected error"}), 500


@inventory_bp.route("/products", methods=["POST"])
@require_actor
def create_product():
    """
    Create a product, optionally with opening stock.

    Request body:
    {
        "sku": str,
        "name": str,
        "category_id": int (optional),
        "unit_id": int (optional),
        "purchase_price": "12.50" (optional),
        "initial_stock": int (optional),
        "warehouse_id": int (required with initial_stock)
    }

    Returns:
        201: Product created
        404: Unknown category/unit/warehouse
        409: SKU already exists
        422: Invalid request
    """
    data = request.get_json(silent=True) or {}

    try:
        product = reference_service.create_product(
            sku=data.get("sku"),
            name=data.get("name"),
            category_id=data.get("category_id"),
            unit_id=data.get("unit_id"),
            purchase_price_cents=reference_service.price_to_cents(data.get("purchase_price")),
            initial_stock=data.get("initial_stock"),
            warehouse_id=data.get("warehouse_id"),
            created_by=g.current_user_id,
        )
        return jsonify(product.to_dict()), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Unexpected error"}), 500


@inventory_bp.route("/products/<sku>", methods=["GET"])
@require_actor
def get_product(sku: str):
    try:
        product = reference_service.get_product_by_sku(sku)
        return jsonify(product.to_dict()), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load product")
        return jsonify({"error": "Unexpected error"}), 500


@inventory_bp.route("/products/<sku>", methods=["PUT"])
@require_actor
def update_product(sku: str):
    """
    Update name, category, unit or purchase price. The sku cannot change.

    Returns:
        200: Product updated
        404: Unknown product/category/unit
        422: Invalid request (including an attempt to change the sku)
    """
    data = request.get_json(silent=True) or {}

    try:
        product = reference_service.update_product(
            sku,
            name=data.get("name"),
            category_id=data.get("category_id"),
            unit_id=data.get("unit_id"),
            purchase_price_cents=reference_service.price_to_cents(data.get("purchase_price")),
            new_sku=data.get("sku"),
        )
        return jsonify(product.to_dict()), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Unexpected error"}), 500
