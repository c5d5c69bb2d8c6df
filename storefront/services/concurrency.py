# Overview: Row locking and retry helpers shared by the order and inventory services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

# Deadlocks / lock timeouts, and version_id mismatches on Product and Order.
RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """SELECT ... FOR UPDATE on Postgres; a no-op on SQLite, where version_id catches lost updates."""
    return query.with_for_update()


def run_with_retry(work, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Call `work()` until it succeeds or `attempts` runs out.

    Each failure rolls the session back, so `work` has to reload whatever
    it reads. The last failure is re-raised unchanged.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return work()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts:
                raise
            delay = backoff_base * 2 ** (attempt - 1)
            current_app.logger.warning(
                "%s on attempt %s of %s, retrying in %.2fs",
                type(exc).__name__, attempt, attempts, delay,
            )
            time.sleep(delay)
