"""
AggregateLockRegistry -- per-aggregate mutual exclusion inside one process.

Responsibility:
    Serialize every transition on the same observation id, so the guard
    and the state machine always evaluate against the latest committed
    snapshot.  Different ids never contend.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Used by ObservationStore around each transition transaction.  Works
    together with ``SELECT ... FOR UPDATE`` (across processes on
    PostgreSQL) and the optimistic version column (any backend).

Invariants enforced:
    - One lock object per id while it is held or awaited; the entry is
      removed when its reference count drops to zero, so the registry
      does not grow with the number of observations ever touched.

Failure modes:
    - AggregateLockTimeoutError if the lock is not acquired within the
      timeout.  Retriable by the caller.
"""

import threading
from collections.abc import Generator
from contextlib import contextmanager
from uuid import UUID

from bbs_kernel.exceptions import AggregateLockTimeoutError
from bbs_kernel.logging_config import get_logger

logger = get_logger("services.aggregate_locks")


class _Entry:
    __slots__ = ("lock", "refs")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.refs = 0


class AggregateLockRegistry:
    """Reference-counted map of aggregate id -> lock."""

    def __init__(self, entity_type: str = "Observation"):
        self._entity_type = entity_type
        self._guard = threading.Lock()
        self._entries: dict[UUID, _Entry] = {}

    def _checkout(self, key: UUID) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.refs += 1
            return entry

    def _release(self, key: UUID, entry: _Entry) -> None:
        with self._guard:
            entry.refs -= 1
            if entry.refs == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, key: UUID, timeout_seconds: float) -> Generator[None, None, None]:
        """Hold the lock for ``key`` for the duration of the block.

        Raises:
            AggregateLockTimeoutError: lock not acquired within the timeout.
        """
        entry = self._checkout(key)
        try:
            if not entry.lock.acquire(timeout=timeout_seconds):
                logger.warning(
                    "aggregate_lock_timeout",
                    extra={
                        "entity_type": self._entity_type,
                        "entity_id": str(key),
                        "timeout_seconds": timeout_seconds,
                    },
                )
                raise AggregateLockTimeoutError(self._entity_type, str(key), timeout_seconds)
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._release(key, entry)

    def active_count(self) -> int:
        """Number of ids currently held or awaited."""
        with self._guard:
            return len(self._entries)
