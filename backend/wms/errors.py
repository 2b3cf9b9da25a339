# Overview: Typed error taxonomy raised by the ledger and rendered by the routes.

"""
Error taxonomy (authoritative)

- ValidationError: caller's fault (malformed input, source == target,
  non-positive quantity, wrong type/status for the action). Not retried.
- InvalidStateTransitionError: a ValidationError raised when a transaction is
  asked to leave a terminal state.
- InsufficientStockError: a ValidationError raised by the stock store when a
  decrease would go negative. Carries the offending product/warehouse.
- NotFoundError: unknown transaction/product/warehouse id.
- ConflictError: reference-number collision or concurrent double-approval that
  outlived the internal retries. Safe to retry the whole operation.
- InternalError: storage unavailable after internal retries.
"""
from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error the ledger surfaces to its callers."""

    status_code = 500
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "type": type(self).__name__, "retryable": self.retryable}


class ValidationError(LedgerError):
    status_code = 422


class InvalidStateTransitionError(ValidationError):
    def __init__(self, transaction_id: int, current_status: str, requested_status: str):
        super().__init__(
            f"Transaction {transaction_id} is {current_status} and cannot move to {requested_status}"
        )
        self.transaction_id = transaction_id
        self.current_status = current_status
        self.requested_status = requested_status

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(
            transaction_id=self.transaction_id,
            current_status=self.current_status,
            requested_status=self.requested_status,
        )
        return data


class InsufficientStockError(ValidationError):
    def __init__(self, product_id: int, warehouse_id: int, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id} in warehouse {warehouse_id}. "
            f"On-hand: {available}, requested: {requested}"
        )
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.requested = requested
        self.available = available

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(
            product_id=self.product_id,
            warehouse_id=self.warehouse_id,
            requested=self.requested,
            available=self.available,
        )
        return data


class NotFoundError(LedgerError):
    status_code = 404

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(LedgerError):
    status_code = 409
    retryable = True


class InternalError(LedgerError):
    status_code = 503
    retryable = True


class ReferenceNumberCollision(ConflictError):
    """Another writer took the generated reference number first."""

    def __init__(self, reference_number: str):
        super().__init__(f"Reference number {reference_number} already in use")
        self.reference_number = reference_number
