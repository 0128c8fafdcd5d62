"""
Session-owned cache holding the client's shadow copy of the board.

The shadow list is never a source of truth. Writes and invalidations
bump a generation counter, so a refetch that started before either one
cannot land on top of it or mark the cache fresh.
"""

from dataclasses import replace
from typing import Optional


class QueryCache:
    def __init__(self):
        self._data: Optional[list] = None
        self._stale = True
        self._generation = 0
        self._closed = False

    @property
    def stale(self) -> bool:
        return self._stale or self._data is None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self) -> Optional[list]:
        return None if self._data is None else list(self._data)

    def snapshot(self) -> Optional[list]:
        """Independent copy of the shadow list, for rollback."""
        if self._data is None:
            return None
        return [replace(p) for p in self._data]

    def set(self, projects: list) -> None:
        self._ensure_open()
        self._data = list(projects)
        self._generation += 1

    def restore(self, snapshot: Optional[list]) -> None:
        """Put back a snapshot exactly, including 'never loaded'."""
        self._ensure_open()
        self._data = None if snapshot is None else list(snapshot)
        self._generation += 1

    def invalidate(self) -> None:
        self._stale = True
        self._generation += 1

    def complete_fetch(self, generation: int, projects: list) -> bool:
        """Store refetched data unless a write or invalidation happened since `generation` was read."""
        if self._closed or generation != self._generation:
            return False
        self._data = list(projects)
        self._stale = False
        self._generation += 1
        return True

    def close(self) -> None:
        self._data = None
        self._stale = True
        self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("QueryCache is closed")
