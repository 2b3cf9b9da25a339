from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


# Transaction types
TYPE_STOCK_IN = "STOCK_IN"
TYPE_STOCK_OUT = "STOCK_OUT"
TYPE_TRANSFER = "TRANSFER"
TRANSACTION_TYPES = (TYPE_STOCK_IN, TYPE_STOCK_OUT, TYPE_TRANSFER)

# Transaction statuses
STATUS_PENDING = "PENDING"
STATUS_APPROVED = "APPROVED"
STATUS_REJECTED = "REJECTED"
STATUS_COMPLETED = "COMPLETED"
TRANSACTION_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED, STATUS_COMPLETED)


class StockRecord(db.Model):
    """
    Quantity on hand for one (product, warehouse) pair.

    Rows are created lazily on the first increase; a missing row means zero.
    Only the stock store writes this table, and the CHECK constraint backs up
    its conditional updates so quantity can never be stored negative.
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", "warehouse_id", name="uq_stock_records_product_warehouse"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_records_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "quantity": self.quantity,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Transaction(db.Model):
    """
    Stock-affecting request (append-only).

    LIFECYCLE:
    - STOCK_IN / STOCK_OUT: created COMPLETED, never change again
    - TRANSFER: created PENDING, then exactly one of APPROVED / REJECTED

    warehouse_id is the acting warehouse (the source for a transfer);
    target_warehouse_id is set only for TRANSFER.

    version_id guards the single status change: two sessions racing to
    approve/reject the same row cannot both flush.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_created_id", "created_at", "id"),
        db.Index("ix_transactions_type_status", "type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable identifier, e.g. "TRF-20260115182500-042"
    reference_number = db.Column(db.String(64), nullable=False, unique=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, index=True)

    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    target_warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True, index=True)

    supplier = db.Column(db.String(255), nullable=True)
    destination = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, nullable=False)
    approved_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "TransactionItem",
        backref="transaction",
        lazy=True,
        order_by="TransactionItem.position",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} ref={self.reference_number!r} {self.type}/{self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference_number": self.reference_number,
            "type": self.type,
            "status": self.status,
            "warehouse_id": self.warehouse_id,
            "target_warehouse_id": self.target_warehouse_id,
            "supplier": self.supplier,
            "destination": self.destination,
            "notes": self.notes,
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "items": [item.to_dict() for item in self.items],
        }


class TransactionItem(db.Model):
    """Line of a transaction. Fixed at creation; only the parent's status changes."""
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_transaction_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "created_at": to_utc_z(self.created_at),
        }
