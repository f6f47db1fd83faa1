# backend/retrofit/engine/coordinator.py
from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator

logger = logging.getLogger(__name__)


@dataclass
class _AuditSlot:
    lock: threading.RLock = field(default_factory=threading.RLock)
    guard: threading.Lock = field(default_factory=threading.Lock)
    requested: int = 0   # last ticket handed out
    completed: int = 0   # highest ticket covered by a finished run
    last_result: Any = None
    users: int = 0       # callers holding or waiting on this slot


class RecalcCoordinator:
    """
    Per-audit single writer for area mutations and recalculations.

    Callers mutate inside `mutation(audit_id)`, commit, and only then call
    `recalculate(audit_id, runner)`. A request is covered by the first run that
    takes its snapshot after the request was ticketed; requests queued behind a
    running recalculation are answered with that run's result instead of
    running again.

    A slot lives only while some caller holds or waits on it, so ids that
    never resolve to an audit leave nothing behind.
    """

    def __init__(self, debounce_seconds: float = 0.0):
        self.debounce_seconds = max(0.0, float(debounce_seconds or 0.0))
        self._slots: Dict[Any, _AuditSlot] = {}
        self._slots_lock = threading.Lock()

    @contextmanager
    def _holding(self, audit_id: Any) -> Iterator[_AuditSlot]:
        with self._slots_lock:
            slot = self._slots.get(audit_id)
            if slot is None:
                slot = self._slots[audit_id] = _AuditSlot()
            slot.users += 1
        try:
            yield slot
        finally:
            with self._slots_lock:
                slot.users -= 1
                if slot.users == 0 and self._slots.get(audit_id) is slot:
                    del self._slots[audit_id]

    @contextmanager
    def mutation(self, audit_id: Any) -> Iterator[None]:
        with self._holding(audit_id) as slot:
            with slot.lock:
                yield

    def recalculate(self, audit_id: Any, runner: Callable[[], Any]) -> Any:
        with self._holding(audit_id) as slot:
            with slot.guard:
                slot.requested += 1
                ticket = slot.requested

            with slot.lock:
                if slot.completed >= ticket:
                    logger.debug("Recalc for audit %s coalesced (ticket %s)", audit_id, ticket)
                    return slot.last_result

                if self.debounce_seconds:
                    time.sleep(self.debounce_seconds)

                # everything ticketed up to here is covered by this run's read
                with slot.guard:
                    covered = slot.requested

                result = runner()

                slot.last_result = result
                slot.completed = covered
                return result

    def pending(self, audit_id: Any) -> int:
        """Tickets handed out for an audit that is currently in use (0 when idle)."""
        with self._slots_lock:
            slot = self._slots.get(audit_id)
            return slot.requested if slot else 0

    def tracked(self) -> int:
        """Number of audits with a live slot."""
        with self._slots_lock:
            return len(self._slots)
