"""Lock-striped map holding per-device runtime state."""

from __future__ import annotations

import threading
from typing import Dict, Generic, Hashable, List, Optional, Tuple, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

DEFAULT_STRIPES = 16


class StripedStateTable(Generic[K, V]):
    """Dictionary split into independently locked buckets.

    Keys that land in different stripes never contend. ``lock_for(key)``
    exposes the stripe lock so callers can make a read-modify-write
    sequence on one key atomic.
    """

    def __init__(self, stripes: int = DEFAULT_STRIPES) -> None:
        if stripes < 1:
            raise ValueError("stripes must be at least 1")
        self._locks = [threading.RLock() for _ in range(stripes)]
        self._buckets: List[Dict[K, V]] = [{} for _ in range(stripes)]

    def _index(self, key: K) -> int:
        return hash(key) % len(self._locks)

    def lock_for(self, key: K) -> threading.RLock:
        return self._locks[self._index(key)]

    def get(self, key: K) -> Optional[V]:
        index = self._index(key)
        with self._locks[index]:
            return self._buckets[index].get(key)

    def put(self, key: K, value: V) -> Optional[V]:
        """Store *value* and return the entry it replaced."""

        index = self._index(key)
        with self._locks[index]:
            previous = self._buckets[index].get(key)
            self._buckets[index][key] = value
            return previous

    def pop(self, key: K, expected: Optional[V] = None) -> Optional[V]:
        """Remove *key*; with *expected*, only if it still maps to that exact object."""

        index = self._index(key)
        with self._locks[index]:
            bucket = self._buckets[index]
            current = bucket.get(key)
            if current is None or (expected is not None and current is not expected):
                return None
            del bucket[key]
            return current

    def items(self) -> List[Tuple[K, V]]:
        """Snapshot of all entries, taken stripe by stripe."""

        result: List[Tuple[K, V]] = []
        for lock, bucket in zip(self._locks, self._buckets):
            with lock:
                result.extend(bucket.items())
        return result

    def keys(self) -> List[K]:
        return [key for key, _ in self.items()]

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        return len(self.items())
