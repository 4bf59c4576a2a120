# Overview: In-process change notifications keyed by table name.

"""
Clients keep whole-table views and re-fetch a table when it changes.

Every committed flush that touched a table bumps that table's version and
calls the callbacks subscribed to it. Rolled-back work publishes nothing.
"""
from __future__ import annotations

import threading
from collections import defaultdict
from typing import Callable

from flask import current_app, has_app_context
from sqlalchemy import event
from sqlalchemy.orm import Session


Callback = Callable[[str, int], None]

_PENDING_KEY = "labstock_changed_tables"

# Touched on every authenticated request; not client data.
UNPUBLISHED_TABLES = frozenset({"session_tokens"})


class ChangeFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._versions: dict[str, int] = defaultdict(int)
        self._subscribers: dict[str, list[Callback]] = defaultdict(list)

    def subscribe(self, table: str, callback: Callback) -> Callable[[], None]:
        """Register callback(table, version). Returns an unsubscribe function."""
        with self._lock:
            self._subscribers[table].append(callback)

        def _unsubscribe():
            with self._lock:
                if callback in self._subscribers[table]:
                    self._subscribers[table].remove(callback)

        return _unsubscribe

    def versions(self) -> dict[str, int]:
        with self._lock:
            return dict(self._versions)

    def version(self, table: str) -> int:
        with self._lock:
            return self._versions.get(table, 0)

    def publish(self, tables) -> None:
        notifications = []
        with self._lock:
            for table in sorted(set(tables)):
                self._versions[table] += 1
                notifications.append((table, self._versions[table], list(self._subscribers[table])))

        for table, version, callbacks in notifications:
            for callback in callbacks:
                try:
                    callback(table, version)
                except Exception:
                    if has_app_context():
                        current_app.logger.warning(
                            "Change feed subscriber failed for table %s", table, exc_info=True
                        )

    def reset(self) -> None:
        with self._lock:
            self._versions.clear()
            self._subscribers.clear()


feed = ChangeFeed()


def _collect(session, flush_context, instances):
    tables = session.info.setdefault(_PENDING_KEY, set())
    for obj in list(session.new) + list(session.dirty) + list(session.deleted):
        table = getattr(obj, "__tablename__", None)
        if table and table not in UNPUBLISHED_TABLES:
            tables.add(table)


def _publish(session):
    tables = session.info.pop(_PENDING_KEY, None)
    if tables:
        feed.publish(tables)


def _discard(session, previous_transaction):
    session.info.pop(_PENDING_KEY, None)


def install() -> None:
    """Attach the session listeners once per process."""
    if event.contains(Session, "before_flush", _collect):
        return
    event.listen(Session, "before_flush", _collect)
    event.listen(Session, "after_commit", _publish)
    event.listen(Session, "after_soft_rollback", _discard)
