# Overview: Reference data (categories, units, warehouses, products); create, product update and lookup.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, Product, Unit, Warehouse
from ..validation import ItemRequest, coerce_int, optional_text, require_id
from .concurrency import lock_for_update, run_with_retry
from .ledger_engine import get_ledger


# Maximum purchase price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


def price_to_cents(value) -> int | None:
    """
    Convert a decimal money amount ("12.50", Decimal, int) to integer cents.

    Floats are rejected: they cannot represent most cent values exactly.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError("purchase_price must be a decimal string or integer")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError("purchase_price must be a decimal amount")
    if not amount.is_finite():
        raise ValidationError("purchase_price must be a decimal amount")
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    _check_price_cents(cents)
    return cents


def _check_price_cents(cents: int | None) -> None:
    if cents is None:
        return
    if cents < 0:
        raise ValidationError("purchase_price must be >= 0")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"purchase_price cannot exceed {MAX_PRICE_CENTS / 100:,.2f}")


def _insert_unique(row, conflict_message: str):
    def _op():
        db.session.add(row)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise ConflictError(conflict_message) from exc
        return row

    return run_with_retry(_op)


def create_category(name: str, description: str | None = None) -> Category:
    name = optional_text(name, "name", max_length=128)
    if not name:
        raise ValidationError("name is required")
    category = Category(name=name, description=optional_text(description, "description", max_length=None))
    return _insert_unique(category, f"Category {name!r} already exists")


def create_unit(name: str, abbreviation: str) -> Unit:
    name = optional_text(name, "name", max_length=64)
    abbreviation = optional_text(abbreviation, "abbreviation", max_length=16)
    if not name or not abbreviation:
        raise ValidationError("name and abbreviation are required")
    return _insert_unique(Unit(name=name, abbreviation=abbreviation), f"Unit {name!r} already exists")


def create_warehouse(code: str, name: str, address: str | None = None, is_active: bool = True) -> Warehouse:
    code = optional_text(code, "code", max_length=32)
    name = optional_text(name, "name")
    if not code or not name:
        raise ValidationError("code and name are required")
    warehouse = Warehouse(
        code=code.upper(),
        name=name,
        address=optional_text(address, "address", max_length=None),
        is_active=bool(is_active),
    )
    return _insert_unique(warehouse, f"Warehouse code {code.upper()!r} already exists")


def create_product(
    *,
    sku: str,
    name: str,
    category_id: int | None = None,
    unit_id: int | None = None,
    purchase_price_cents: int | None = None,
    initial_stock: int | None = None,
    warehouse_id: int | None = None,
    created_by: int | None = None,
) -> Product:
    """
    Create a product, optionally with opening stock in one warehouse.

    Opening stock is booked as a regular STOCK_IN through the ledger engine
    (never written to the stock store directly), so the stock store stays
    derivable from the transaction log. The product row and the opening
    STOCK_IN commit together: if the stock-in fails, no product is left.
    """
    sku = optional_text(sku, "sku", max_length=64)
    name = optional_text(name, "name")
    if not sku or not name:
        raise ValidationError("sku and name are required")
    if purchase_price_cents is not None:
        purchase_price_cents = coerce_int(purchase_price_cents, "purchase_price_cents")
        _check_price_cents(purchase_price_cents)

    category_id = _require_category(category_id)
    unit_id = _require_unit(unit_id)

    opening = coerce_int(initial_stock, "initial_stock") if initial_stock not in (None, "") else 0
    if opening < 0:
        raise ValidationError("initial_stock must be >= 0")
    if opening:
        warehouse_id = require_id(warehouse_id, "warehouse_id")
        created_by = require_id(created_by, "created_by")

    def _op():
        product = Product(
            sku=sku,
            name=name,
            category_id=category_id,
            unit_id=unit_id,
            purchase_price_cents=purchase_price_cents,
        )
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError(f"SKU {sku!r} already exists") from exc

        if opening:
            get_ledger().book_stock_in(
                warehouse_id=warehouse_id,
                items=[ItemRequest(quantity=opening, product_id=product.id)],
                created_by=created_by,
                notes="Initial stock",
            )
        db.session.commit()
        return product

    product = run_with_retry(_op)
    current_app.logger.info("Created product %s (ID: %s) opening stock=%d", product.sku, product.id, opening)
    return product


def update_product(
    sku: str,
    *,
    name: str | None = None,
    category_id: int | None = None,
    unit_id: int | None = None,
    purchase_price_cents: int | None = None,
    new_sku: str | None = None,
) -> Product:
    """
    Update a product's descriptive fields, looked up by sku.

    The sku itself is immutable; passing a different ``new_sku`` is a
    ValidationError. Fields left as None are unchanged.
    """
    sku = optional_text(sku, "sku", max_length=64)
    if not sku:
        raise ValidationError("sku is required")
    new_sku = optional_text(new_sku, "sku", max_length=64)
    if new_sku is not None and new_sku != sku:
        raise ValidationError("sku cannot be changed once created")

    name = optional_text(name, "name")
    if purchase_price_cents is not None:
        purchase_price_cents = coerce_int(purchase_price_cents, "purchase_price_cents")
        _check_price_cents(purchase_price_cents)
    category_id = _require_category(category_id)
    unit_id = _require_unit(unit_id)

    def _op():
        product = lock_for_update(
            db.session.query(Product).filter_by(sku=sku)
        ).first()
        if product is None:
            raise NotFoundError("Product", sku)

        if name is not None:
            product.name = name
        if category_id is not None:
            product.category_id = category_id
        if unit_id is not None:
            product.unit_id = unit_id
        if purchase_price_cents is not None:
            product.purchase_price_cents = purchase_price_cents
        db.session.commit()
        return product

    return run_with_retry(_op)


def _require_category(category_id) -> int | None:
    if category_id is None:
        return None
    category_id = require_id(category_id, "category_id")
    if db.session.get(Category, category_id) is None:
        raise NotFoundError("Category", category_id)
    return category_id


def _require_unit(unit_id) -> int | None:
    if unit_id is None:
        return None
    unit_id = require_id(unit_id, "unit_id")
    if db.session.get(Unit, unit_id) is None:
        raise NotFoundError("Unit", unit_id)
    return unit_id


def get_product(product_id: int) -> Product:
    product_id = require_id(product_id, "product_id")
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


def get_product_by_sku(sku: str) -> Product:
    sku = optional_text(sku, "sku", max_length=64)
    if not sku:
        raise ValidationError("sku is required")
    product = db.session.query(Product).filter_by(sku=sku).first()
    if product is None:
        raise NotFoundError("Product", sku)
    return product


def get_warehouse(warehouse_id: int) -> Warehouse:
    warehouse_id = require_id(warehouse_id, "warehouse_id")
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise NotFoundError("Warehouse", warehouse_id)
    return warehouse


def list_warehouses(include_inactive: bool = False) -> list[Warehouse]:
    query = db.session.query(Warehouse)
    if not include_inactive:
        query = query.filter(Warehouse.is_active.is_(True))
    return query.order_by(Warehouse.code).all()
