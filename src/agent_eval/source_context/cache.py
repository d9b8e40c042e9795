"""LRU cache of parsed file metadata keyed by modification time."""

from __future__ import annotations

import threading
from collections import OrderedDict
from pathlib import Path
from typing import Generic, TypeVar

V = TypeVar("V")

CacheKey = tuple[str, int]


class ContextCache(Generic[V]):
    """Bounded LRU keyed by (absolute path, mtime).

    Entries are never invalidated explicitly: a caller that passes the file's
    current mtime simply misses when the file has changed, and stale entries
    age out. Safe to share between threads.
    """

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._entries: OrderedDict[CacheKey, V] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _key(path: str | Path, mtime: int) -> CacheKey:
        return (str(Path(path).absolute()), mtime)

    def get(self, path: str | Path, mtime: int) -> V | None:
        key = self._key(path, mtime)
        with self._lock:
            if key not in self._entries:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return self._entries[key]

    def insert(self, path: str | Path, mtime: int, value: V) -> None:
        key = self._key(path, mtime)
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self._capacity:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0
