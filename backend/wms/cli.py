# Overview: Flask CLI command groups for bootstrap, reference data and ledger inspection.

# backend/wms/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP (PowerShell: $env:FLASK_APP="wms"; bash: export FLASK_APP=wms).
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Reference data:
# - python -m flask reference add-category --name Beverages
# - python -m flask reference add-unit --name Piece --abbreviation pcs
#   Create a category / unit (needed before --category-id / --unit-id).
# - python -m flask reference add-warehouse --code WH-JKT --name "Jakarta DC"
#   Create a warehouse.
# - python -m flask reference list-warehouses [--all]
#   List warehouses (active only unless --all).
# - python -m flask reference add-product --sku SKU-001 --name "Widget" --price 12.50 \
#       --initial-stock 40 --warehouse-id 1 --user-id 1
#   Create a product; opening stock is booked as a STOCK_IN through the ledger.
# - python -m flask reference update-product SKU-001 --name "Widget v2" --price 13.00
#   Change name/category/unit/price; the sku is immutable.
#
# Ledger inspection:
# - python -m flask ledger verify
#   Replay the transaction log and compare with stock records (exit 1 on mismatch).
# - python -m flask ledger stock-report [--warehouse-id 1] [--threshold 10]
#   Print stock per product/warehouse with the low-stock count.

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .services import reference_service, reporting_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Schema created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the transaction log!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()
    click.echo("BUILD  Recreating schema...")
    db.create_all()
    click.echo("PASS Database reset complete")


@click.group('reference')
def reference_group():
    """Reference data (categories, units, warehouses, products)."""


@reference_group.command('add-category')
@click.option('--name', required=True)
@click.option('--description', default=None)
@with_appcontext
def add_category(name, description):
    try:
        category = reference_service.create_category(name=name, description=description)
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created category {category.name} (ID: {category.id})")


@reference_group.command('add-unit')
@click.option('--name', required=True)
@click.option('--abbreviation', required=True)
@with_appcontext
def add_unit(name, abbreviation):
    try:
        unit = reference_service.create_unit(name=name, abbreviation=abbreviation)
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created unit {unit.name} ({unit.abbreviation}) (ID: {unit.id})")


@reference_group.command('list-warehouses')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive warehouses')
@with_appcontext
def list_warehouses(include_inactive):
    for warehouse in reference_service.list_warehouses(include_inactive=include_inactive):
        state = "" if warehouse.is_active else " (inactive)"
        click.echo(f"{warehouse.id:>4}  {warehouse.code:<12} {warehouse.name}{state}")


@reference_group.command('add-warehouse')
@click.option('--code', required=True)
@click.option('--name', required=True)
@click.option('--address', default=None)
@with_appcontext
def add_warehouse(code, name, address):
    try:
        warehouse = reference_service.create_warehouse(code=code, name=name, address=address)
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created warehouse {warehouse.code} (ID: {warehouse.id})")


@reference_group.command('add-product')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--price', default=None, help='Purchase price, e.g. 12.50')
@click.option('--category-id', type=int, default=None)
@click.option('--unit-id', type=int, default=None)
@click.option('--initial-stock', type=int, default=0, show_default=True)
@click.option('--warehouse-id', type=int, default=None, help='Required with --initial-stock')
@click.option('--user-id', type=int, default=None, help='Actor recorded on the opening STOCK_IN')
@with_appcontext
def add_product(sku, name, price, category_id, unit_id, initial_stock, warehouse_id, user_id):
    try:
        product = reference_service.create_product(
            sku=sku,
            name=name,
            category_id=category_id,
            unit_id=unit_id,
            purchase_price_cents=reference_service.price_to_cents(price),
            initial_stock=initial_stock,
            warehouse_id=warehouse_id,
            created_by=user_id,
        )
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created product {product.sku} (ID: {product.id})")


@reference_group.command('update-product')
@click.argument('sku')
@click.option('--name', default=None)
@click.option('--price', default=None, help='Purchase price, e.g. 12.50')
@click.option('--category-id', type=int, default=None)
@click.option('--unit-id', type=int, default=None)
@with_appcontext
def update_product(sku, name, price, category_id, unit_id):
    try:
        product = reference_service.update_product(
            sku,
            name=name,
            category_id=category_id,
            unit_id=unit_id,
            purchase_price_cents=reference_service.price_to_cents(price),
        )
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Updated product {product.sku} (ID: {product.id})")


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection."""


@ledger_group.command('verify')
@with_appcontext
def verify_ledger():
    """Check that stock records equal a replay of the transaction log."""
    mismatches = reporting_service.verify_stock_consistency()
    if not mismatches:
        click.echo("PASS Stock records match the transaction log")
        return

    click.echo(f"FAIL {len(mismatches)} mismatching stock record(s):")
    for row in mismatches:
        click.echo(
            f"  product={row['product_id']} warehouse={row['warehouse_id']} "
            f"expected={row['expected']} actual={row['actual']}"
        )
    raise SystemExit(1)


@ledger_group.command('stock-report')
@click.option('--warehouse-id', type=int, default=None)
@click.option('--threshold', type=int, default=None, help='Low-stock threshold')
@with_appcontext
def stock_report(warehouse_id, threshold):
    report = reporting_service.stock_report(warehouse_id=warehouse_id, low_stock_threshold=threshold)
    for item in report["items"]:
        flag = " LOW" if item["stock"] < report["low_stock_threshold"] else ""
        click.echo(f"{item['warehouse']:<24} {item['sku']:<16} {item['stock']:>8}{flag}")
    click.echo(f"\nTotal stock: {report['total_stock']}  Low-stock rows: {report['low_stock_items']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(reference_group)
    app.cli.add_command(ledger_group)
