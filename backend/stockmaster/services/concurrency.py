# Overview: Row locking and retry helpers for concurrent stock mutations.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the rows a sale or restock is about to change.

    SQLite ignores the clause; the items.version_id optimistic lock still
    catches a concurrent writer there (StaleDataError on flush).
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a unit of work, retrying when the database reports a lock conflict or
    an optimistic version mismatch.

    The session is rolled back before each retry, so ``func`` must redo all of
    its reads; it must not close over ORM instances loaded outside of it.
    """
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Concurrent update conflict (attempt %s/%s): %s", attempt + 1, attempts, exc.__class__.__name__
            )
            time.sleep(backoff_base * (2 ** attempt))
    return None
