# Overview: Locking, retry and transaction helpers shared by every ledger mutation.

from __future__ import annotations

import time
from typing import Iterable

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Product


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction()
    covers it with a database-level write lock instead.

    populate_existing() makes the locked read overwrite any copy already in
    the identity map, so checks never run against a pre-lock value.
    """
    return query.with_for_update().populate_existing()


def begin_write_transaction() -> None:
    """
    Open the single-writer transaction on SQLite.

    BEGIN IMMEDIATE takes the database write lock up front, so a concurrent
    writer blocks (busy timeout) instead of reading stale stock and failing
    later at commit. Server databases rely on the FOR UPDATE row locks.
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def lock_products(product_ids: Iterable[int]) -> dict[int, Product]:
    """
    Lock every referenced product row in ascending id order.

    A fixed acquisition order means two carts touching the same products
    can never deadlock each other. Missing ids are simply absent from the
    returned mapping; callers decide which error that is.
    """
    ids = sorted({int(pid) for pid in product_ids})
    if not ids:
        return {}
    rows = lock_for_update(
        db.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id)
    ).all()
    return {p.id: p for p in rows}


def lock_all_products() -> list[Product]:
    return lock_for_update(db.session.query(Product).order_by(Product.id)).all()


def _retry_attempts(default: int) -> int:
    try:
        return int(current_app.config.get("DB_RETRY_ATTEMPTS", default))
    except RuntimeError:
        return default


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    attempts = attempts or _retry_attempts(3)
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Run func inside one write transaction and commit it.

    Any exception rolls the whole unit back before propagating, so a failed
    call leaves the ledger exactly as it was. Lock/version conflicts are
    retried by run_with_retry.
    """
    def _op():
        try:
            begin_write_transaction()
            result = func()
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
