# agrolink/services/item_locks.py
from __future__ import annotations

import threading
import weakref
from contextlib import contextmanager

from agrolink.errors import RemoteUnavailableError


class _ItemLock:
    __slots__ = ("mutex", "__weakref__")

    def __init__(self):
        self.mutex = threading.RLock()


class ItemLockRegistry:
    """
    One re-entrant mutex per catalog item id.
    Entries disappear once no caller holds them.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = weakref.WeakValueDictionary()

    def _lock_for(self, key: str) -> _ItemLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = _ItemLock()
                self._locks[key] = entry
            return entry

    @contextmanager
    def hold(self, item_id, timeout: float = 10.0):
        entry = self._lock_for(str(item_id))
        if not entry.mutex.acquire(timeout=timeout):
            raise RemoteUnavailableError("Item is busy. Please retry.")
        try:
            yield
        finally:
            entry.mutex.release()


# process-wide registry shared by catalog adjustments and approvals
item_locks = ItemLockRegistry()
