"""
KeyedLockRegistry -- In-process per-entity locks.

The orchestrator holds the locks for every source, target and allocation a
request touches for the whole of its transaction.  Keys are acquired in
sorted order so two requests over overlapping entities cannot deadlock.
Across processes, the version compare-and-set is what keeps writers apart;
these locks only stop threads of one process from spending their retries
on each other.
"""

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager


class KeyedLockRegistry:
    """Lazily created ``threading.Lock`` per key."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, keys: Iterable[str]) -> Iterator[tuple[str, ...]]:
        """Acquire every key (deduplicated, sorted); release in reverse order."""
        ordered = tuple(sorted(set(keys)))
        acquired: list[threading.Lock] = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
