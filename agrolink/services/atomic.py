# agrolink/services/atomic.py
from __future__ import annotations

import logging
from typing import Any, Callable, List

log = logging.getLogger(__name__)


class AtomicUnit:
    """
    Runs a group of writes all-or-nothing.

    With transactions enabled (replica set / Atlas) the body runs inside
    session.with_transaction and every write must pass `unit.session`.
    Without them the body registers an undo step after each write
    (`unit.on_undo`); if the body raises, the undo steps run newest-first
    and the original error propagates.
    """

    def __init__(self, client, use_transactions: bool = False, label: str = "unit"):
        self.client = client
        self.use_transactions = use_transactions
        self.label = label
        self.session = None
        self._undo: List[Callable[[], Any]] = []

    def on_undo(self, fn: Callable[[], Any]) -> None:
        if not self.use_transactions:
            self._undo.append(fn)

    def run(self, body: Callable[["AtomicUnit"], Any]) -> Any:
        if self.use_transactions:
            with self.client.start_session() as s:
                self.session = s
                try:
                    return s.with_transaction(lambda _s: body(self))
                finally:
                    self.session = None

        self._undo = []
        try:
            return body(self)
        except Exception:
            self._rollback()
            raise

    def _rollback(self) -> None:
        while self._undo:
            step = self._undo.pop()
            try:
                step()
            except Exception as e:
                # keep unwinding; a failed undo needs manual repair
                log.error("%s: compensation step failed: %s", self.label, e)
        log.warning("%s: rolled back", self.label)
