"""Bounded, persisted set of visit ids that were already resolved."""

from __future__ import annotations

import threading
from collections import OrderedDict
from logging import getLogger
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from applinks.domain.ports.persistence import AppStateStore

log = getLogger(__name__)

DEFAULT_CAPACITY = 500


class ProcessedIdentifierStore:
    """Insertion-ordered set with FIFO eviction once ``capacity`` is exceeded.

    Contents are loaded from the state store once and written through on every
    insertion. All read-modify-write operations run under one lock so the
    deferred recovery and live resolutions cannot lose each other's updates.
    """

    def __init__(self, state: AppStateStore, *, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._state = state
        self._capacity = capacity
        self._lock = threading.Lock()
        self._ids: OrderedDict[str, None] = OrderedDict.fromkeys(state.load_processed_ids())
        if _evict_overflow(self._ids, capacity):
            state.save_processed_ids(list(self._ids))

    @property
    def capacity(self) -> int:
        return self._capacity

    def contains(self, identifier: str) -> bool:
        with self._lock:
            return identifier in self._ids

    def add(self, identifier: str) -> bool:
        """Record ``identifier``; return False when it was already present.

        The check and the insert are one critical section, so when two callers
        race on the same id exactly one of them gets True. The new contents are
        persisted before they become visible; if saving raises, nothing changes.
        """

        with self._lock:
            if identifier in self._ids:
                return False
            updated = OrderedDict(self._ids)
            updated[identifier] = None
            evicted = _evict_overflow(updated, self._capacity)
            self._state.save_processed_ids(list(updated))
            self._ids = updated
        if evicted:
            log.debug("Evicted %s processed id(s) over capacity %s", evicted, self._capacity)
        return True

    def record(self, identifier: str) -> bool:
        """``add`` for delivery paths: a failed save is logged and counts as new."""

        try:
            return self.add(identifier)
        except Exception:
            log.exception("Failed to persist processed id %s", identifier)
            return True

    def snapshot(self) -> list[str]:
        with self._lock:
            return list(self._ids)

    def __contains__(self, identifier: object) -> bool:
        return isinstance(identifier, str) and self.contains(identifier)

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())


def _evict_overflow(ids: OrderedDict[str, None], capacity: int) -> int:
    evicted = 0
    while len(ids) > capacity:
        ids.popitem(last=False)
        evicted += 1
    return evicted

