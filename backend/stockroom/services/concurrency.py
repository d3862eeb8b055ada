# Overview: Locking and retry helpers that serialize stock mutations.

from __future__ import annotations

import threading
import time
import weakref
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


_registry_guard = threading.Lock()
# Entries vanish once no thread holds or waits on the lock.
_keyed_locks: weakref.WeakValueDictionary[str, threading.RLock] = weakref.WeakValueDictionary()


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    keyed_lock() covers the single-process SQLite case.
    """
    return query.with_for_update()


def _lock_for(key: str) -> threading.RLock:
    with _registry_guard:
        lock = _keyed_locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _keyed_locks[key] = lock
        return lock


@contextmanager
def keyed_lock(key: str):
    """
    Process-wide lock for one entity (e.g. "product:prod_1a2b3c4d").

    Re-entrant: a thread already holding the key may acquire it again, which
    lets the return workflow hold a product lock across its own stock call.
    Hold it until the session commits, not just until the write is flushed.
    """
    lock = _lock_for(key)
    lock.acquire()
    try:
        yield
    finally:
        lock.release()


def product_lock(product_id: str):
    return keyed_lock(f"product:{product_id}")


def return_lock(return_id: str):
    return keyed_lock(f"return:{return_id}")


def run_with_retry(func, *, session=None, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Domain errors propagate on first raise.
    """
    session = session if session is not None else db.session
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
