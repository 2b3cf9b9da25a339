# Overview: Retry and locking helpers shared by the ledger's storage work.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, InternalError, ReferenceNumberCollision
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def sorted_stock_keys(keys):
    """
    Deduplicate and order (product_id, warehouse_id) keys.

    Every multi-key operation touches stock rows in this order, so two
    batches over overlapping keys always acquire row locks the same way.
    """
    return sorted(set(keys))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a unit of DB work, retrying on concurrency-related failures.

    OperationalError (deadlocks, lock timeouts, "database is locked"),
    StaleDataError (optimistic-lock conflicts) and ReferenceNumberCollision
    roll the session back and run ``func`` again. Any other exception rolls
    back and propagates unchanged.
    When retries run out the failure surfaces as InternalError (storage) or
    ConflictError (concurrent modification).
    """
    if attempts is None:
        attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("LEDGER_RETRY_BACKOFF", 0.05)
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return func()
        except StaleDataError as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise ConflictError("Concurrent modification detected, retry the operation") from exc
            current_app.logger.warning("Optimistic lock conflict (attempt %d/%d)", attempt + 1, attempts)
        except ReferenceNumberCollision as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning("%s (attempt %d/%d)", exc.message, attempt + 1, attempts)
        except OperationalError as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise InternalError("Storage unavailable, retry later") from exc
            current_app.logger.warning(
                "Storage error (attempt %d/%d): %s", attempt + 1, attempts, exc.orig
            )
        except Exception:
            db.session.rollback()
            raise
        time.sleep(backoff_base * (2 ** attempt))
