# Overview: Service-layer helpers for row locking and bounded read retry.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from purchasing.errors import TransientDataAccessError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def read_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a repository read with bounded retry on transient failures.

    WHY: Reads are idempotent, so retrying them is safe. Writes are never
    routed through here: replaying a half-applied write sequence without an
    idempotency key could double-apply stock or journal side effects.

    Retries on OperationalError / DBAPIError (dropped connections, locks) and
    StaleDataError. After the last attempt the failure is surfaced as
    TransientDataAccessError.
    """
    if attempts is None:
        attempts = current_app.config.get("DATA_ACCESS_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("DATA_ACCESS_RETRY_BACKOFF", 0.1)
    attempts = max(1, attempts)

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, DBAPIError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            current_app.logger.warning(
                "Transient read failure (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            if attempt < attempts - 1 and backoff_base:
                time.sleep(backoff_base * (2 ** attempt))
    raise TransientDataAccessError(f"Read failed after {attempts} attempts: {last_exc}") from last_exc
