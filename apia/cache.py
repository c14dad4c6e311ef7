from threading import Lock
from typing import Callable, Dict, Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class ReadThroughCache(Generic[K, V]):
    """Process-lifetime memo table safe to populate from several threads.

    The value is computed outside the lock. When two callers race on the same
    key both compute, the first insert wins and the loser's value is dropped,
    so every caller sees the same object.
    """

    def __init__(self):
        self._items: Dict[K, V] = {}
        self._lock = Lock()

    def get_or_compute(self, key: K, compute: Callable[[], V]) -> V:
        with self._lock:
            if key in self._items:
                return self._items[key]
        value = compute()
        with self._lock:
            return self._items.setdefault(key, value)

    def put(self, key: K, value: V) -> V:
        """Overwrite unconditionally (explicit re-registration)."""
        with self._lock:
            self._items[key] = value
        return value

    def discard(self, key: K) -> None:
        with self._lock:
            self._items.pop(key, None)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
