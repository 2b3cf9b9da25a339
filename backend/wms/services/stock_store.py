# Overview: Stock store; durable (product, warehouse) -> quantity counters with atomic updates.

from __future__ import annotations

from abc import ABC, abstractmethod

from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite

from ..errors import InsufficientStockError, ValidationError
from ..extensions import db
from ..models import StockRecord
from ..time_utils import utcnow
"""
Stock Store Invariants (authoritative)

- Quantity is never negative. Enforced here (conditional UPDATE) and by the
  ck_stock_records_quantity_non_negative CHECK constraint.
- Each increase/decrease is ONE statement: the precondition and the mutation
  cannot be interleaved by another writer on the same key.
- A missing row means zero; rows are created lazily by increase().
- The store never commits. Callers (the ledger engine) own the transaction
  boundary so multi-item batches commit or roll back together.
"""


def _require_positive(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Stock amount must be an integer")
    if amount <= 0:
        raise ValidationError("Stock amount must be positive")
    return amount


class StockStore(ABC):
    """Contract for the per-(product, warehouse) stock counters."""

    @abstractmethod
    def get(self, product_id: int, warehouse_id: int) -> int:
        """Current quantity, 0 when no record exists."""

    @abstractmethod
    def breakdown(self, product_id: int) -> dict[int, int]:
        """Quantity per warehouse for one product."""

    @abstractmethod
    def increase(self, product_id: int, warehouse_id: int, amount: int) -> None:
        ...

    @abstractmethod
    def decrease(self, product_id: int, warehouse_id: int, amount: int) -> None:
        """Subtract ``amount`` or raise InsufficientStockError."""


class SQLAlchemyStockStore(StockStore):
    """StockStore over the stock_records table in the current db.session."""

    def get(self, product_id: int, warehouse_id: int) -> int:
        quantity = (
            db.session.query(StockRecord.quantity)
            .filter_by(product_id=product_id, warehouse_id=warehouse_id)
            .scalar()
        )
        return int(quantity or 0)

    def breakdown(self, product_id: int) -> dict[int, int]:
        rows = (
            db.session.query(StockRecord.warehouse_id, StockRecord.quantity)
            .filter_by(product_id=product_id)
            .order_by(StockRecord.warehouse_id)
            .all()
        )
        return {warehouse_id: int(quantity) for warehouse_id, quantity in rows}

    def increase(self, product_id: int, warehouse_id: int, amount: int) -> None:
        amount = _require_positive(amount)
        now = utcnow()

        # Single-statement upsert: a concurrent first insert on the same key
        # turns into an increment instead of a unique violation.
        stmt = self._insert().values(
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=amount,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[StockRecord.product_id, StockRecord.warehouse_id],
            set_={
                "quantity": StockRecord.quantity + amount,
                "updated_at": now,
            },
        )
        db.session.execute(stmt)

    def decrease(self, product_id: int, warehouse_id: int, amount: int) -> None:
        amount = _require_positive(amount)

        stmt = (
            update(StockRecord)
            .where(
                StockRecord.product_id == product_id,
                StockRecord.warehouse_id == warehouse_id,
                StockRecord.quantity >= amount,
            )
            .values(quantity=StockRecord.quantity - amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise InsufficientStockError(
                product_id=product_id,
                warehouse_id=warehouse_id,
                requested=amount,
                available=self.get(product_id, warehouse_id),
            )

    @staticmethod
    def _insert():
        dialect = db.session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(StockRecord)
        if dialect == "sqlite":
            return sqlite.insert(StockRecord)
        raise NotImplementedError(f"Stock upsert not supported on {dialect}")
