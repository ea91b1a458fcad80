from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock


class KeyedLockRegistry:
    """One mutex per key, so read-check-write runs serialized per faculty member or timetable."""

    def __init__(self) -> None:
        self._locks: dict[str, Lock] = defaultdict(Lock)
        self._guard = Lock()

    def _lock_for(self, key: str) -> Lock:
        with self._guard:
            return self._locks[key]

    @contextmanager
    def hold(self, *keys: str | None) -> Iterator[None]:
        # Sorted acquisition keeps two callers locking the same pair from deadlocking.
        ordered = sorted({key for key in keys if key})
        acquired: list[Lock] = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def clear(self) -> None:
        with self._guard:
            self._locks.clear()


_registry = KeyedLockRegistry()


def faculty_key(faculty_id: str | None) -> str | None:
    return f"faculty:{faculty_id}" if faculty_id else None


def timetable_key(class_id: str, day: str) -> str:
    return f"timetable:{class_id}:{day}"


def special_class_key(special_class_id: str) -> str:
    return f"special_class:{special_class_id}"


def get_lock_registry() -> KeyedLockRegistry:
    return _registry
