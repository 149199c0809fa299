"""Keyed storage capability.

Durable storage is out of scope for this service; components depend on the
:class:`KeyedStore` contract instead of a database binding.  Any replacement
must keep ``put_if_absent`` atomic per key.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class KeyedStore(ABC, Generic[K, V]):
    """Abstract keyed map with an atomic check-then-insert primitive."""

    @abstractmethod
    def get(self, key: K) -> V | None:
        """Return the value for *key*, or ``None``."""

    @abstractmethod
    def put_if_absent(self, key: K, value: V) -> bool:
        """Insert *value* only if *key* is absent. Returns ``True`` on insert."""

    @abstractmethod
    def put(self, key: K, value: V) -> None:
        """Insert or replace *value* under *key*."""

    @abstractmethod
    def values(self) -> Iterator[V]:
        """Iterate over a snapshot of the stored values."""

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]


class InMemoryKeyedStore(KeyedStore[K, V]):
    """Process-local store.

    The lock covers only the membership test and the insert, so callers racing
    on the same key see exactly one winner while different keys never wait on
    anything slower than a dict operation.
    """

    def __init__(self) -> None:
        self._data: dict[K, V] = {}
        self._lock = threading.Lock()

    def get(self, key: K) -> V | None:
        return self._data.get(key)

    def put_if_absent(self, key: K, value: V) -> bool:
        with self._lock:
            if key in self._data:
                return False
            self._data[key] = value
            return True

    def put(self, key: K, value: V) -> None:
        with self._lock:
            self._data[key] = value

    def values(self) -> Iterator[V]:
        with self._lock:
            snapshot = list(self._data.values())
        return iter(snapshot)

    def __len__(self) -> int:
        return len(self._data)
