# backend/wms/routes/transactions.py
"""
Stock transaction API routes: stock-in, stock-out, transfers and history.

Every write goes through the ledger engine. Typed ledger errors map to
their status codes (422 validation / insufficient stock / state, 404 not
found, 409 conflict, 503 storage); anything else is logged and returned
as 500.
"""
from flask import Blueprint, request, jsonify, g, current_app

from wms.decorators import require_actor
from wms.errors import LedgerError, ValidationError
from wms.services.ledger_engine import get_ledger
from wms.services.transaction_log import TransactionFilters
from wms.time_utils import parse_iso_datetime
from wms.validation import coerce_int


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _error_response(exc: LedgerError):
    return jsonify(exc.to_dict()), exc.status_code


def _optional_int_arg(name: str):
    value = request.args.get(name)
    if value is None or value == "":
        return None
    return coerce_int(value, name)


def _date_arg(name: str):
    value = request.args.get(name)
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date or datetime")


@transactions_bp.route("/stock-in", methods=["POST"])
@require_actor
def create_stock_in():
    """
    Record goods received into a warehouse (COMPLETED immediately).

    Request body:
    {
        "warehouse_id": int,
        "items": [{"product_id": int | "sku": str, "quantity": int}, ...],
        "supplier": str (optional),
        "notes": str (optional)
    }

    Returns:
        201: Transaction created
        404: Unknown warehouse/product
        422: Invalid request
    """
    data = request.get_json(silent=True) or {}

    try:
        txn = get_ledger().create_stock_in(
            warehouse_id=data.get("warehouse_id"),
            items=data.get("items"),
            supplier=data.get("supplier"),
            notes=data.get("notes"),
            created_by=g.current_user_id,
        )
        return jsonify(txn.to_dict()), 201

    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create stock-in")
        return jsonify({"error": "Unexpected error"}), 500


@transactions_bp.route("/stock-out", methods=["POST"])
@require_actor
def create_stock_out():
    """
    Record goods leaving a warehouse (COMPLETED immediately).

    Request body:
    {
        "warehouse_id": int,
        "items": [{"product_id": int | "sku": str, "quantity": int}, ...],
        "destination": str (optional),
        "notes": str (optional)
    }

    Returns:
        201: Transaction created
        404: Unknown warehouse/product
        422: Invalid request or insufficient stock
    """
    data = request.get_json(silent=True) or {}

    try:
        txn = get_ledger().create_stock_out(
            warehouse_id=data.get("warehouse_id"),
            items=data.get("items"),
            destination=data.get("destination"),
            notes=data.get("notes"),
            created_by=g.current_user_id,
        )
        return jsonify(txn.to_dict()), 201

    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create stock-out")
        return jsonify({"error": "Unexpected error"}), 500


@transactions_bp.route("/transfer", methods=["POST"])
@require_actor
def create_transfer():
    """
    Request a transfer between two warehouses (PENDING until approved).

    Request body:
    {
        "source_warehouse_id": int,
        "target_warehouse_id": int,
        "items": [{"product_id": int | "sku": str, "quantity": int}, ...],
        "notes": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        txn = get_ledger().create_transfer(
            source_warehouse_id=data.get("source_warehouse_id"),
            target_warehouse_id=data.get("target_warehouse_id"),
            items=data.get("items"),
            notes=data.get("notes"),
            created_by=g.current_user_id,
        )
        return jsonify(txn.to_dict()), 201

    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create transfer")
        return jsonify({"error": "Unexpected error"}), 500


@transactions_bp.route("/<int:transaction_id>/approve", methods=["POST"])
@require_actor
def approve_transfer(transaction_id: int):
    """
    Approve a pending transfer; moves the stock.

    Returns:
        200: Transfer approved
        404: Transaction not found
        409: Concurrent modification, retry
        422: Not a pending transfer, or insufficient stock at source
    """
    data = request.get_json(silent=True) or {}

    try:
        txn = get_ledger().approve_transfer(
            transaction_id,
            approved_by=g.current_user_id,
            notes=data.get("notes"),
        )
        return jsonify(txn.to_dict()), 200

    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to approve transfer")
        return jsonify({"error": "Unexpected error"}), 500


@transactions_bp.route("/<int:transaction_id>/reject", methods=["POST"])
@require_actor
def reject_transfer(transaction_id: int):
    """
    Reject a pending transfer; stock is untouched.

    Request body:
    {
        "reason": str
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        txn = get_ledger().reject_transfer(
            transaction_id,
            approved_by=g.current_user_id,
            reason=data.get("reason"),
        )
        return jsonify(txn.to_dict()), 200

    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reject transfer")
        return jsonify({"error": "Unexpected error"}), 500


@transactions_bp.route("", methods=["GET"])
@require_actor
def list_transactions():
    """
    Transaction history, most recent first.

    Query params: warehouse_id, type, status, start_date, end_date, search,
    page (default 1), limit (default 10, max 100).
    """
    try:
        filters = TransactionFilters(
            warehouse_id=_optional_int_arg("warehouse_id"),
            type=request.args.get("type") or None,
            status=request.args.get("status") or None,
            start_date=_date_arg("start_date"),
            end_date=_date_arg("end_date"),
            search=request.args.get("search") or None,
        )
        result = get_ledger().list_transactions(
            filters,
            page=request.args.get("page", 1),
            limit=request.args.get("limit", 10),
        )
        return jsonify(result.to_dict()), 200

    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Unexpected error"}), 500


@transactions_bp.route("/pending-transfers", methods=["GET"])
@require_actor
def list_pending_transfers():
    """Pending transfers, optionally only those headed to ``warehouse_id``."""
    try:
        result = get_ledger().list_pending_transfers(
            warehouse_id=_optional_int_arg("warehouse_id"),
            page=request.args.get("page", 1),
            limit=request.args.get("limit", 10),
        )
        return jsonify(result.to_dict()), 200

    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list pending transfers")
        return jsonify({"error": "Unexpected error"}), 500


@transactions_bp.route("/<int:transaction_id>", methods=["GET"])
@require_actor
def get_transaction(transaction_id: int):
    try:
        txn = get_ledger().get_transaction(transaction_id)
        return jsonify(txn.to_dict()), 200

    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load transaction")
        return jsonify({"error": "Unexpected error"}), 500
