# Overview: Transaction log; append-only record of stock-affecting requests.

from __future__ import annotations

import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import (
    ConflictError,
    InvalidStateTransitionError,
    NotFoundError,
    ReferenceNumberCollision,
    ValidationError,
)
from ..extensions import db
from ..models import Transaction, TransactionItem
from ..models.ledger import (
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
    TRANSACTION_STATUSES,
    TRANSACTION_TYPES,
    TYPE_STOCK_IN,
    TYPE_STOCK_OUT,
    TYPE_TRANSFER,
)
from ..time_utils import reference_stamp, utcnow
from .concurrency import lock_for_update


REFERENCE_PREFIXES = {
    TYPE_STOCK_IN: "IN",
    TYPE_STOCK_OUT: "OUT",
    TYPE_TRANSFER: "TRF",
}

# Legal status moves. Everything else (including leaving a terminal state)
# is an InvalidStateTransitionError.
ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_APPROVED, STATUS_REJECTED},
}

DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100


@dataclass(frozen=True)
class TransactionFilters:
    warehouse_id: int | None = None         # matches source OR target
    target_warehouse_id: int | None = None
    type: str | None = None
    status: str | None = None
    start_date: datetime | None = None      # inclusive
    end_date: datetime | None = None        # inclusive
    search: str | None = None               # reference-number substring

    def validate(self) -> None:
        if self.type is not None and self.type not in TRANSACTION_TYPES:
            raise ValidationError(f"Unknown transaction type: {self.type}")
        if self.status is not None and self.status not in TRANSACTION_STATUSES:
            raise ValidationError(f"Unknown transaction status: {self.status}")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValidationError("start_date must not be after end_date")


def normalize_page(page, limit) -> tuple[int, int]:
    try:
        page = int(page) if page is not None else 1
        limit = int(limit) if limit is not None else DEFAULT_PAGE_LIMIT
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers")
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_LIMIT)
    return page, limit


def generate_reference_number(transaction_type: str, at: datetime | None = None) -> str:
    """{PREFIX}-{yyyyMMddHHmmss}-{NNN}; NNN is a random disambiguator."""
    prefix = REFERENCE_PREFIXES[transaction_type]
    stamp = reference_stamp(at or utcnow())
    return f"{prefix}-{stamp}-{secrets.randbelow(1000):03d}"


class TransactionLog(ABC):
    """Contract for the append-only transaction record."""

    @abstractmethod
    def append(
        self,
        *,
        type: str,
        status: str,
        warehouse_id: int,
        items: list[tuple[int, int]],
        created_by: int,
        target_warehouse_id: int | None = None,
        supplier: str | None = None,
        destination: str | None = None,
        notes: str | None = None,
    ) -> Transaction:
        ...

    @abstractmethod
    def find(self, transaction_id: int) -> Transaction | None:
        ...

    @abstractmethod
    def get_for_update(self, transaction_id: int) -> Transaction:
        ...

    @abstractmethod
    def set_status(
        self,
        transaction: Transaction,
        new_status: str,
        approver_id: int,
        note_append: str | None = None,
    ) -> Transaction:
        ...

    @abstractmethod
    def list(
        self,
        filters: TransactionFilters,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> tuple[list[Transaction], int]:
        ...


class SQLAlchemyTransactionLog(TransactionLog):
    """TransactionLog over the transactions / transaction_items tables."""

    def append(
        self,
        *,
        type: str,
        status: str,
        warehouse_id: int,
        items: list[tuple[int, int]],
        created_by: int,
        target_warehouse_id: int | None = None,
        supplier: str | None = None,
        destination: str | None = None,
        notes: str | None = None,
    ) -> Transaction:
        """
        Persist a transaction header and its items in the current DB transaction.

        Reference numbers are checked against existing rows before use; up to
        REFERENCE_NUMBER_ATTEMPTS disambiguators are tried. A collision that
        slips past the check (concurrent writer) fails the flush and is raised
        as ReferenceNumberCollision so the whole operation is retried.
        """
        if type not in TRANSACTION_TYPES:
            raise ValidationError(f"Unknown transaction type: {type}")
        if status not in TRANSACTION_STATUSES:
            raise ValidationError(f"Unknown transaction status: {status}")
        if not items:
            raise ValidationError("A transaction needs at least one item")

        now = utcnow()
        reference_number = self._free_reference_number(type, now)

        txn = Transaction(
            reference_number=reference_number,
            type=type,
            status=status,
            warehouse_id=warehouse_id,
            target_warehouse_id=target_warehouse_id,
            supplier=supplier,
            destination=destination,
            notes=notes,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        db.session.add(txn)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ReferenceNumberCollision(reference_number) from exc

        for position, (product_id, quantity) in enumerate(items):
            db.session.add(
                TransactionItem(
                    transaction_id=txn.id,
                    product_id=product_id,
                    quantity=quantity,
                    position=position,
                    created_at=now,
                )
            )
        db.session.flush()
        return txn

    def _free_reference_number(self, transaction_type: str, at: datetime) -> str:
        attempts = current_app.config.get("REFERENCE_NUMBER_ATTEMPTS", 5)
        for _ in range(max(1, attempts)):
            candidate = generate_reference_number(transaction_type, at)
            taken = (
                db.session.query(Transaction.id)
                .filter_by(reference_number=candidate)
                .first()
            )
            if taken is None:
                return candidate
        raise ConflictError("Could not allocate a unique reference number, retry the operation")

    def find(self, transaction_id: int) -> Transaction | None:
        return db.session.get(Transaction, transaction_id)

    def get_for_update(self, transaction_id: int) -> Transaction:
        txn = lock_for_update(
            db.session.query(Transaction).filter_by(id=transaction_id)
        ).populate_existing().first()
        if txn is None:
            raise NotFoundError("Transaction", transaction_id)
        return txn

    def set_status(
        self,
        transaction: Transaction,
        new_status: str,
        approver_id: int,
        note_append: str | None = None,
    ) -> Transaction:
        """
        Move a transaction to ``new_status`` and flush.

        The flush carries the version_id predicate, so if another session
        changed the row since it was read this raises StaleDataError and the
        surrounding retry re-reads the (now terminal) status.
        """
        allowed = ALLOWED_TRANSITIONS.get(transaction.status, set())
        if new_status not in allowed:
            raise InvalidStateTransitionError(transaction.id, transaction.status, new_status)

        transaction.status = new_status
        transaction.approved_by = approver_id
        if note_append:
            transaction.notes = (
                f"{transaction.notes}\n{note_append}" if transaction.notes else note_append
            )
        transaction.updated_at = utcnow()
        db.session.flush()
        return transaction

    def list(
        self,
        filters: TransactionFilters,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> tuple[list[Transaction], int]:
        filters.validate()
        page, limit = normalize_page(page, limit)

        query = db.session.query(Transaction)

        if filters.warehouse_id is not None:
            query = query.filter(
                or_(
                    Transaction.warehouse_id == filters.warehouse_id,
                    Transaction.target_warehouse_id == filters.warehouse_id,
                )
            )
        if filters.target_warehouse_id is not None:
            query = query.filter(Transaction.target_warehouse_id == filters.target_warehouse_id)
        if filters.type:
            query = query.filter(Transaction.type == filters.type)
        if filters.status:
            query = query.filter(Transaction.status == filters.status)
        if filters.start_date:
            query = query.filter(Transaction.created_at >= filters.start_date)
        if filters.end_date:
            query = query.filter(Transaction.created_at <= filters.end_date)
        if filters.search:
            query = query.filter(Transaction.reference_number.ilike(f"%{filters.search.strip()}%"))

        total = query.count()
        rows = (
            query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return rows, total
