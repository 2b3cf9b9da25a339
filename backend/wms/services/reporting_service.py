# Overview: Read-only aggregations over the stock store and the transaction log.

from __future__ import annotations

from collections import defaultdict

from flask import current_app
from sqlalchemy import and_, func, or_

from ..extensions import db
from ..models import Category, Product, StockRecord, Transaction, TransactionItem, Unit, Warehouse
from ..models.ledger import (
    STATUS_APPROVED,
    STATUS_COMPLETED,
    TYPE_STOCK_IN,
    TYPE_STOCK_OUT,
    TYPE_TRANSFER,
)
from ..validation import coerce_int, require_id
from . import reference_service
from .transaction_log import normalize_page


def stock_report(*, warehouse_id: int | None = None, low_stock_threshold: int | None = None) -> dict:
    """
    Current stock per (product, warehouse) with totals and a low-stock count.

    A row is "low" when its quantity is below the threshold (LOW_STOCK_THRESHOLD
    when not given).
    """
    if low_stock_threshold is None:
        low_stock_threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 10)
    threshold = coerce_int(low_stock_threshold, "low_stock_threshold")

    query = (
        db.session.query(StockRecord, Product, Warehouse, Category.name)
        .join(Product, Product.id == StockRecord.product_id)
        .join(Warehouse, Warehouse.id == StockRecord.warehouse_id)
        .outerjoin(Category, Category.id == Product.category_id)
    )
    if warehouse_id is not None:
        query = query.filter(StockRecord.warehouse_id == coerce_int(warehouse_id, "warehouse_id"))

    rows = query.order_by(Warehouse.code, Product.sku).all()

    items = []
    total_stock = 0
    low_stock_items = 0
    for record, product, warehouse, category_name in rows:
        total_stock += record.quantity
        if record.quantity < threshold:
            low_stock_items += 1
        items.append({
            "product_id": product.id,
            "sku": product.sku,
            "name": product.name,
            "category": category_name,
            "warehouse_id": warehouse.id,
            "warehouse": warehouse.name,
            "stock": record.quantity,
        })

    return {
        "total_stock": total_stock,
        "low_stock_items": low_stock_items,
        "low_stock_threshold": threshold,
        "items": items,
    }


def replay_stock() -> dict[tuple[int, int], int]:
    """
    Derive every (product_id, warehouse_id) quantity from the transaction log.

    Only COMPLETED stock-in/stock-out and APPROVED transfers carry stock
    effects; PENDING and REJECTED transfers contribute nothing.
    """
    effective = or_(
        and_(Transaction.type.in_([TYPE_STOCK_IN, TYPE_STOCK_OUT]), Transaction.status == STATUS_COMPLETED),
        and_(Transaction.type == TYPE_TRANSFER, Transaction.status == STATUS_APPROVED),
    )
    rows = (
        db.session.query(
            Transaction.type,
            Transaction.warehouse_id,
            Transaction.target_warehouse_id,
            TransactionItem.product_id,
            func.sum(TransactionItem.quantity),
        )
        .join(TransactionItem, TransactionItem.transaction_id == Transaction.id)
        .filter(effective)
        .group_by(
            Transaction.type,
            Transaction.warehouse_id,
            Transaction.target_warehouse_id,
            TransactionItem.product_id,
        )
        .all()
    )

    totals: dict[tuple[int, int], int] = defaultdict(int)
    for txn_type, warehouse_id, target_warehouse_id, product_id, quantity in rows:
        quantity = int(quantity or 0)
        if txn_type == TYPE_STOCK_IN:
            totals[(product_id, warehouse_id)] += quantity
        elif txn_type == TYPE_STOCK_OUT:
            totals[(product_id, warehouse_id)] -= quantity
        else:
            totals[(product_id, warehouse_id)] -= quantity
            totals[(product_id, target_warehouse_id)] += quantity
    return dict(totals)


def verify_stock_consistency() -> list[dict]:
    """
    Compare the stock store with a replay of the transaction log.

    Returns one entry per mismatching key (empty list when consistent). A
    missing stock record and a zero quantity are equivalent.
    """
    expected = replay_stock()
    actual = {
        (product_id, warehouse_id): int(quantity)
        for product_id, warehouse_id, quantity in db.session.query(
            StockRecord.product_id, StockRecord.warehouse_id, StockRecord.quantity
        ).all()
    }

    mismatches = []
    for key in sorted(set(expected) | set(actual)):
        want = expected.get(key, 0)
        have = actual.get(key, 0)
        if want != have:
            mismatches.append({
                "product_id": key[0],
                "warehouse_id": key[1],
                "expected": want,
                "actual": have,
            })

    if mismatches:
        current_app.logger.error("Stock store diverges from transaction log on %d key(s)", len(mismatches))
    return mismatches


def list_inventory(
    *,
    warehouse_id: int | None = None,
    category_id: int | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    """
    Paginated stock records with their product and warehouse, newest first.

    ``search`` is a case-insensitive substring of the product sku or name.
    """
    page, limit = normalize_page(page, limit)

    query = (
        db.session.query(StockRecord, Product, Warehouse, Category, Unit)
        .join(Product, Product.id == StockRecord.product_id)
        .join(Warehouse, Warehouse.id == StockRecord.warehouse_id)
        .outerjoin(Category, Category.id == Product.category_id)
        .outerjoin(Unit, Unit.id == Product.unit_id)
    )
    if warehouse_id is not None:
        warehouse_id = reference_service.get_warehouse(warehouse_id).id
        query = query.filter(StockRecord.warehouse_id == warehouse_id)
    if category_id is not None:
        query = query.filter(Product.category_id == require_id(category_id, "category_id"))
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.sku.ilike(pattern), Product.name.ilike(pattern)))

    total = query.count()
    rows = (
        query.order_by(StockRecord.created_at.desc(), StockRecord.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    data = []
    for record, product, warehouse, category, unit in rows:
        item = record.to_dict()
        item["product"] = {
            "id": product.id,
            "sku": product.sku,
            "name": product.name,
            "category": category.name if category else None,
            "unit": unit.abbreviation if unit else None,
        }
        item["warehouse"] = {"id": warehouse.id, "code": warehouse.code, "name": warehouse.name}
        data.append(item)

    return {
        "data": data,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit,
    }
