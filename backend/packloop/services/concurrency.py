# Overview: Transaction boundary and locking helpers shared by all write services.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Versioned rows (accounts, instances) still fail with StaleDataError on a
    lost update, which run_atomic retries.
    """
    return query.with_for_update()


def run_atomic(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run `func` as one unit of work: commit once on success, roll back on any error.

    Retries only on concurrency failures: OperationalError (deadlocks, lock
    timeouts) and StaleDataError (optimistic locking conflicts). Domain
    errors raised by `func` roll back and propagate immediately.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc
