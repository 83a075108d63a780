from __future__ import annotations

import threading
import time
from typing import Any

from ..errors import LockTimeoutError
from .metrics import observe_lock_acquisition
from .schema import encode_key


class KeyLockTable:
    """
    In-process lock per (table, primary key).

    Entries are reference counted and dropped once no thread holds or waits
    for them, so the table only grows with the number of keys in flight.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], list] = {}  # key -> [lock, refcount]

    def _checkout(self, ident: tuple[str, str]) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(ident)
            if entry is None:
                entry = self._locks[ident] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, ident: tuple[str, str]) -> None:
        with self._guard:
            entry = self._locks[ident]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[ident]

    def hold(self, table: str, key: Any, timeout: float) -> "KeyLock":
        return KeyLock(self, table, key, timeout)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class KeyLock:
    """
    Mutex around the read-modify-write of a single document.

    Released on context exit, regardless of whether an exception occurred.

    Usage:
        with locks.hold("posts", 42, timeout=10):
            # read, resolve and commit document 42
            ...
    """

    def __init__(self, table_locks: KeyLockTable, table: str, key: Any, timeout: float) -> None:
        self.table_locks = table_locks
        self.table = table
        self.key = key
        self.timeout = timeout
        self._ident = (table, encode_key(key))
        self._lock: threading.Lock | None = None

    def __enter__(self) -> "KeyLock":
        """
        Acquire the key lock.

        Raises:
            LockTimeoutError: If the lock cannot be acquired within timeout
        """
        start = time.monotonic()
        lock = self.table_locks._checkout(self._ident)
        if not lock.acquire(timeout=self.timeout):
            self.table_locks._checkin(self._ident)
            observe_lock_acquisition(self.table, time.monotonic() - start, False)
            raise LockTimeoutError(
                f"Failed to acquire lock for {self.table}:{self.key!r} within {self.timeout} seconds"
            )

        observe_lock_acquisition(self.table, time.monotonic() - start, True)
        self._lock = lock
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._lock is not None:
            self._lock.release()
            self._lock = None
            self.table_locks._checkin(self._ident)

        # Propagate exceptions
        return False
