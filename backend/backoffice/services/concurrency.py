# Overview: Locking and retry helpers shared by the checkout and ticket services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction()
    takes the database write lock up front instead.
    """
    return query.with_for_update()


def begin_write_transaction(lock_timeout_ms: int | None = None) -> None:
    """
    Open the unit of work for a stock-mutating transaction.

    SQLite: BEGIN IMMEDIATE, so concurrent checkouts serialize on the write
    lock instead of failing at commit time.
    PostgreSQL: optionally bound row-lock waits with SET LOCAL lock_timeout.
    Without a timeout, waits are unbounded.
    """
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql" and lock_timeout_ms:
        db.session.execute(text(f"SET LOCAL lock_timeout = {int(lock_timeout_ms)}"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks, lock timeouts) and
    StaleDataError (optimistic locking conflicts). The session is rolled back
    before each retry, so func must redo its whole unit of work.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after concurrency failure (attempt %s/%s): %s",
                attempt + 1, attempts, exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
