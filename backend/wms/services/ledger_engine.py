# Overview: Ledger engine; the only writer of stock, driven by transaction state changes.

"""
Ledger Engine

WHY: Stock counters and the transaction log must never disagree. Every
stock-affecting request goes through here, and each request is exactly one
database transaction: the log row, its items, its status change and every
stock mutation commit together or not at all.

STATE MACHINE:
- create STOCK_IN   -> COMPLETED, increase(warehouse) per item
- create STOCK_OUT  -> COMPLETED, decrease(warehouse) per item
- create TRANSFER   -> PENDING, no stock effect
- PENDING --approve--> APPROVED, decrease(source) + increase(target) per item
- PENDING --reject---> REJECTED, no stock effect
- APPROVED / REJECTED / COMPLETED are terminal

CONCURRENCY:
- Per-key linearization comes from the stock store's single-statement
  conditional updates.
- Within one operation, stock keys are touched in sorted
  (product_id, warehouse_id) order.
- Approve/reject flush the status change first; the version_id predicate
  makes a racing second approval fail with StaleDataError, which is retried
  and then reports the now-terminal status.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass

from flask import current_app

from ..errors import (
    InsufficientStockError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Product, Transaction, Warehouse
from ..models.ledger import (
    STATUS_APPROVED,
    STATUS_COMPLETED,
    STATUS_PENDING,
    STATUS_REJECTED,
    TYPE_STOCK_IN,
    TYPE_STOCK_OUT,
    TYPE_TRANSFER,
)
from ..validation import ItemRequest, optional_text, parse_items, require_id
from .concurrency import run_with_retry, sorted_stock_keys
from .stock_store import SQLAlchemyStockStore, StockStore
from .transaction_log import (
    SQLAlchemyTransactionLog,
    TransactionFilters,
    TransactionLog,
    normalize_page,
)


@dataclass
class TransactionPage:
    data: list[Transaction]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0

    def to_dict(self) -> dict:
        return {
            "data": [txn.to_dict() for txn in self.data],
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "total_pages": self.total_pages,
        }


class LedgerEngine:
    """
    Orchestrates StockStore mutations from TransactionLog state transitions.

    Stateless apart from its two collaborators; one instance is bound at app
    startup and shared by every request (each request has its own session).
    """

    def __init__(self, stock_store: StockStore, transaction_log: TransactionLog):
        self.stock_store = stock_store
        self.transaction_log = transaction_log

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_stock_in(
        self,
        *,
        warehouse_id: int,
        items,
        created_by: int,
        supplier: str | None = None,
        notes: str | None = None,
    ) -> Transaction:
        warehouse_id = require_id(warehouse_id, "warehouse_id")
        created_by = require_id(created_by, "created_by")
        requested = parse_items(items)
        supplier = optional_text(supplier, "supplier")
        notes = optional_text(notes, "notes", max_length=None)

        def _op():
            txn = self.book_stock_in(
                warehouse_id=warehouse_id,
                items=requested,
                created_by=created_by,
                supplier=supplier,
                notes=notes,
            )
            db.session.commit()
            return txn

        return self._execute(_op, "stock-in")

    def book_stock_in(
        self,
        *,
        warehouse_id: int,
        items,
        created_by: int,
        supplier: str | None = None,
        notes: str | None = None,
    ) -> Transaction:
        """
        Write a COMPLETED STOCK_IN and its stock increase without committing.

        For callers that fold the stock-in into a larger unit of work (e.g.
        opening stock on product creation); the caller commits, or rolls
        back everything on failure.
        """
        self._require_active_warehouse(warehouse_id)
        lines = self._resolve_items(parse_items(items))

        txn = self.transaction_log.append(
            type=TYPE_STOCK_IN,
            status=STATUS_COMPLETED,
            warehouse_id=warehouse_id,
            items=lines,
            created_by=created_by,
            supplier=supplier,
            notes=notes,
        )
        self._apply_effects(
            [(product_id, warehouse_id, quantity) for product_id, quantity in lines]
        )
        return txn

    def create_stock_out(
        self,
        *,
        warehouse_id: int,
        items,
        created_by: int,
        destination: str | None = None,
        notes: str | None = None,
    ) -> Transaction:
        warehouse_id = require_id(warehouse_id, "warehouse_id")
        created_by = require_id(created_by, "created_by")
        requested = parse_items(items)
        destination = optional_text(destination, "destination")
        notes = optional_text(notes, "notes", max_length=None)

        def _op():
            self._require_active_warehouse(warehouse_id)
            lines = self._resolve_items(requested)

            txn = self.transaction_log.append(
                type=TYPE_STOCK_OUT,
                status=STATUS_COMPLETED,
                warehouse_id=warehouse_id,
                items=lines,
                created_by=created_by,
                destination=destination,
                notes=notes,
            )
            self._apply_effects(
                [(product_id, warehouse_id, -quantity) for product_id, quantity in lines]
            )
            db.session.commit()
            return txn

        return self._execute(_op, "stock-out")

    def create_transfer(
        self,
        *,
        source_warehouse_id: int,
        target_warehouse_id: int,
        items,
        created_by: int,
        notes: str | None = None,
    ) -> Transaction:
        source_warehouse_id = require_id(source_warehouse_id, "source_warehouse_id")
        target_warehouse_id = require_id(target_warehouse_id, "target_warehouse_id")
        created_by = require_id(created_by, "created_by")
        if source_warehouse_id == target_warehouse_id:
            raise ValidationError("Target warehouse must differ from the source warehouse")
        requested = parse_items(items)
        notes = optional_text(notes, "notes", max_length=None)

        def _op():
            self._require_active_warehouse(source_warehouse_id)
            self._require_active_warehouse(target_warehouse_id)
            lines = self._resolve_items(requested)

            # No stock effect until approved
            txn = self.transaction_log.append(
                type=TYPE_TRANSFER,
                status=STATUS_PENDING,
                warehouse_id=source_warehouse_id,
                target_warehouse_id=target_warehouse_id,
                items=lines,
                created_by=created_by,
                notes=notes,
            )
            db.session.commit()
            return txn

        return self._execute(_op, "transfer")

    # ------------------------------------------------------------------
    # Transfer decisions
    # ------------------------------------------------------------------

    def approve_transfer(
        self,
        transaction_id: int,
        approved_by: int,
        notes: str | None = None,
    ) -> Transaction:
        """
        Approve a PENDING transfer: debit source, credit target, mark APPROVED.

        Raises:
            NotFoundError: unknown transaction
            ValidationError: not a TRANSFER
            InvalidStateTransitionError: no longer PENDING
            InsufficientStockError: source cannot cover an item; the
                transfer stays PENDING and no stock moves
        """
        transaction_id = require_id(transaction_id, "transaction_id")
        approved_by = require_id(approved_by, "approved_by")
        notes = optional_text(notes, "notes", max_length=None)

        def _op():
            txn = self.transaction_log.get_for_update(transaction_id)
            self._require_transfer(txn, "approved")
            if txn.target_warehouse_id is None:
                raise ValidationError(f"Transfer {txn.id} has no target warehouse")

            self.transaction_log.set_status(txn, STATUS_APPROVED, approved_by, notes)

            effects = []
            for item in txn.items:
                effects.append((item.product_id, txn.warehouse_id, -item.quantity))
                effects.append((item.product_id, txn.target_warehouse_id, item.quantity))
            self._apply_effects(effects)

            db.session.commit()
            return txn

        return self._execute(_op, "transfer approval")

    def reject_transfer(
        self,
        transaction_id: int,
        approved_by: int,
        reason: str,
    ) -> Transaction:
        transaction_id = require_id(transaction_id, "transaction_id")
        approved_by = require_id(approved_by, "approved_by")
        reason = optional_text(reason, "reason", max_length=None)
        if not reason:
            raise ValidationError("A rejection reason is required")

        def _op():
            txn = self.transaction_log.get_for_update(transaction_id)
            self._require_transfer(txn, "rejected")
            self.transaction_log.set_status(txn, STATUS_REJECTED, approved_by, f"Rejected: {reason}")
            db.session.commit()
            return txn

        return self._execute(_op, "transfer rejection")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_transaction(self, transaction_id: int) -> Transaction:
        transaction_id = require_id(transaction_id, "transaction_id")
        txn = self.transaction_log.find(transaction_id)
        if txn is None:
            raise NotFoundError("Transaction", transaction_id)
        return txn

    def list_transactions(
        self,
        filters: TransactionFilters | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> TransactionPage:
        filters = filters or TransactionFilters()
        page, limit = normalize_page(page, limit)
        rows, total = self.transaction_log.list(filters, page=page, limit=limit)
        return TransactionPage(data=rows, total=total, page=page, limit=limit)

    def list_pending_transfers(
        self,
        warehouse_id: int | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> TransactionPage:
        """PENDING transfers awaiting a decision, optionally for one target warehouse."""
        filters = TransactionFilters(
            type=TYPE_TRANSFER,
            status=STATUS_PENDING,
            target_warehouse_id=require_id(warehouse_id, "warehouse_id") if warehouse_id is not None else None,
        )
        return self.list_transactions(filters, page=page, limit=limit)

    def get_stock(self, product_id: int, warehouse_id: int | None = None):
        """
        Quantity of a product in one warehouse (int), or the per-warehouse
        breakdown ({warehouse_id: quantity}) when no warehouse is given.
        """
        product_id = require_id(product_id, "product_id")
        if db.session.get(Product, product_id) is None:
            raise NotFoundError("Product", product_id)

        if warehouse_id is None:
            return self.stock_store.breakdown(product_id)

        warehouse_id = require_id(warehouse_id, "warehouse_id")
        if db.session.get(Warehouse, warehouse_id) is None:
            raise NotFoundError("Warehouse", warehouse_id)
        return self.stock_store.get(product_id, warehouse_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute(self, op, description: str) -> Transaction:
        try:
            txn = run_with_retry(op)
        except InsufficientStockError as exc:
            current_app.logger.warning("Rejected %s: %s", description, exc.message)
            raise
        except InvalidStateTransitionError as exc:
            current_app.logger.warning("Rejected %s: %s", description, exc.message)
            raise

        current_app.logger.info(
            "Recorded %s %s (%s/%s) actor=%s",
            description,
            txn.reference_number,
            txn.type,
            txn.status,
            txn.approved_by if txn.status in (STATUS_APPROVED, STATUS_REJECTED) else txn.created_by,
        )
        return txn

    def _require_active_warehouse(self, warehouse_id: int) -> Warehouse:
        warehouse = db.session.get(Warehouse, warehouse_id)
        if warehouse is None:
            raise NotFoundError("Warehouse", warehouse_id)
        if not warehouse.is_active:
            raise ValidationError(f"Warehouse {warehouse_id} is inactive")
        return warehouse

    @staticmethod
    def _require_transfer(txn: Transaction, action: str) -> None:
        if txn.type != TYPE_TRANSFER:
            raise ValidationError(f"Only TRANSFER transactions can be {action}; {txn.id} is {txn.type}")

    def _resolve_items(self, requested: list[ItemRequest]) -> list[tuple[int, int]]:
        lines: list[tuple[int, int]] = []
        for item in requested:
            if item.product_id is not None:
                product = db.session.get(Product, item.product_id)
                if product is None:
                    raise NotFoundError("Product", item.product_id)
                if item.sku is not None and product.sku != item.sku:
                    raise ValidationError(
                        f"Product {item.product_id} has sku {product.sku!r}, not {item.sku!r}"
                    )
            else:
                product = db.session.query(Product).filter_by(sku=item.sku).first()
                if product is None:
                    raise NotFoundError("Product", item.sku)
            lines.append((product.id, item.quantity))
        return lines

    def _apply_effects(self, effects: list[tuple[int, int, int]]) -> None:
        """
        Apply signed (product_id, warehouse_id, delta) effects in key order.

        Lines hitting the same key are summed first, so a request listing a
        product twice is checked against its combined quantity.
        """
        net: dict[tuple[int, int], int] = defaultdict(int)
        for product_id, warehouse_id, delta in effects:
            net[(product_id, warehouse_id)] += delta

        for product_id, warehouse_id in sorted_stock_keys(net.keys()):
            delta = net[(product_id, warehouse_id)]
            if delta > 0:
                self.stock_store.increase(product_id, warehouse_id, delta)
            elif delta < 0:
                self.stock_store.decrease(product_id, warehouse_id, -delta)


def init_ledger(app, stock_store: StockStore | None = None, transaction_log: TransactionLog | None = None) -> LedgerEngine:
    """Bind the engine and its concrete stores to the app."""
    engine = LedgerEngine(
        stock_store=stock_store or SQLAlchemyStockStore(),
        transaction_log=transaction_log or SQLAlchemyTransactionLog(),
    )
    app.extensions["ledger_engine"] = engine
    return engine


def get_ledger() -> LedgerEngine:
    return current_app.extensions["ledger_engine"]
