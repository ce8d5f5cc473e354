# agrolink/services/subscription.py
"""
Polling snapshot subscriptions.

A Subscription wraps a `fetch()` callable that returns the current documents
of one view (an owner's catalog, an inbox, a payer's obligations) and turns it
into a lazy, infinite stream of events:

    {"sequence": 3, "documents": [...], "at": "2026-01-01T10:00:00+00:00"}

The first pull always yields the current snapshot; afterwards an event is
yielded only when the snapshot changes. Iteration stops after cancel().
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from agrolink.services.common import iso, now_utc

log = logging.getLogger(__name__)


def _fingerprint(docs: List[Dict[str, Any]]) -> str:
    return json.dumps(docs, sort_keys=True, default=str)


class Subscription:

    def __init__(self, fetch: Callable[[], List[Dict[str, Any]]], interval: float = 2.0,
                 heartbeat: Optional[float] = None, label: str = "subscription"):
        """
        interval   seconds between polls
        heartbeat  if set, next() returns None after this many idle seconds
                   so callers (SSE) can write a keep-alive
        """
        self.fetch = fetch
        self.interval = max(float(interval), 0.0)
        self.heartbeat = heartbeat
        self.label = label
        self.sequence = 0
        self._last: Optional[str] = None
        self._stop = threading.Event()

    # ------------------------------
    # lifecycle
    # ------------------------------
    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def cancel(self) -> None:
        if not self._stop.is_set():
            log.debug("%s cancelled after %s events", self.label, self.sequence)
        self._stop.set()

    def restart(self) -> "Subscription":
        """Re-arm a cancelled subscription; the next pull yields a fresh snapshot."""
        self._last = None
        self._stop.clear()
        return self

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cancel()
        return False

    # ------------------------------
    # iteration
    # ------------------------------
    def __iter__(self):
        return self

    def __next__(self) -> Optional[Dict[str, Any]]:
        idle_since = time.monotonic()
        while not self._stop.is_set():
            docs = self.fetch()
            fp = _fingerprint(docs)
            if fp != self._last:
                self._last = fp
                self.sequence += 1
                return {"sequence": self.sequence, "documents": docs, "at": iso(now_utc())}

            if self.heartbeat is not None and time.monotonic() - idle_since >= self.heartbeat:
                return None

            # wakes early on cancel()
            self._stop.wait(self.interval)
        raise StopIteration
