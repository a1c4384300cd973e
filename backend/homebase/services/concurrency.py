# Overview: Retry helpers for database writes that can lose a race.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    max_backoff: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = RETRYABLE_ERRORS,
    should_retry=None,
):
    """
    Execute a DB operation with retry on concurrency-related failures.

    func must be safe to re-run from scratch: the session is rolled back
    before every retry, so anything it loaded or changed is discarded.
    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts) unless retry_on says otherwise.
    should_retry, when given, can veto a retry for a caught exception.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1 or (should_retry and not should_retry(exc)):
                raise
            time.sleep(min(max_backoff, backoff_base * (2 ** attempt)))
    if last_exc:
        raise last_exc
