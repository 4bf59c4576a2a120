# Overview: Row locking and retry helpers for stock mutations.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Lock the selected product or submission rows until commit.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; the product version_id column
    still rejects a stale write there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func (which commits) again after a lock timeout or a stale product
    version. The session is rolled back before each retry; the last failure
    propagates.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Concurrent stock write, retrying (%d/%d): %s", attempt + 1, attempts - 1, exc
            )
            time.sleep(backoff_base * (2 ** attempt))
