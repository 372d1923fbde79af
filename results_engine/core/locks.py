"""Per-key locks serializing writes to a single result."""

import logging
import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager

from results_engine.core.config import settings
from results_engine.core.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


class KeyedLockRegistry:
    """Hands out one lock per key, dropping it once nobody waits on it."""

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout if timeout is not None else settings.RESULT_LOCK_TIMEOUT_SECONDS
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _Entry] = {}

    @contextmanager
    def hold(self, key: Hashable, timeout: float | None = None) -> Iterator[None]:
        wait = self.timeout if timeout is None else timeout
        with self._guard:
            entry = self._entries.setdefault(key, _Entry())
            entry.holders += 1
        acquired = entry.lock.acquire(timeout=wait)
        try:
            if not acquired:
                logger.warning(f"Timed out after {wait}s waiting for lock {key!r}")
                raise ConcurrencyConflictError(
                    "Another change to this result is in progress",
                    details={"key": repr(key)},
                )
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


result_locks = KeyedLockRegistry()
