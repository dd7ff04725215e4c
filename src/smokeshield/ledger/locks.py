"""Per-location mutual exclusion.

Every state-changing operation on a location runs to completion while
holding that location's lock, so no operation can observe another's
partial update. Different locations never contend with each other.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class LocationLocks:
    """Lazily created lock per location id."""

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_for(self, location_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(location_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[location_id] = lock
            return lock

    @contextmanager
    def hold(self, location_id: str) -> Iterator[None]:
        with self.lock_for(location_id):
            yield
