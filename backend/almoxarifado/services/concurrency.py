# Overview: Locking and retry helpers shared by every stock-mutating service.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


class StorageError(Exception):
    """Raised when the database fails underneath a stock transition."""


# One mutex per material id. SQLite ignores SELECT ... FOR UPDATE, so the
# row lock alone does not serialize writers in a single process.
_material_locks: dict[int, threading.Lock] = {}
_registry_lock = threading.Lock()


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


@contextmanager
def material_lock(material_id: int):
    """
    Serialize stock transitions on a single material.

    Different materials get different locks and never block each other.
    """
    with _registry_lock:
        lock = _material_locks.get(material_id)
        if lock is None:
            lock = threading.Lock()
            _material_locks[material_id] = lock
    with lock:
        yield


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, "database is locked") and
    StaleDataError (optimistic locking conflicts).
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
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc

