"""Key-value dictionaries that back a logical database."""

from __future__ import annotations

import random
import threading
from abc import ABC, abstractmethod
from typing import Callable

Consumer = Callable[[bytes, bytes], bool]


def _key_bytes(key: str) -> bytes:
    return key.encode("utf-8", "surrogateescape")


class Dict(ABC):
    """A key-value store keyed by strings and holding raw bytes."""

    @abstractmethod
    def get(self, key: str) -> bytes | None:
        """Return the value bound to ``key``, or None when absent."""

    @abstractmethod
    def __len__(self) -> int:
        """Return the number of keys."""

    @abstractmethod
    def put(self, key: str, value: bytes) -> int:
        """Bind ``key`` to ``value``; return the number of keys written."""

    @abstractmethod
    def put_if_absent(self, key: str, value: bytes) -> int:
        """Bind ``key`` only when it is absent; return 1 if written, else 0."""

    @abstractmethod
    def put_if_exists(self, key: str, value: bytes) -> int:
        """Bind ``key`` only when it is present; return 1 if written, else 0."""

    @abstractmethod
    def remove(self, key: str) -> int:
        """Remove ``key``; return the number of keys removed."""

    @abstractmethod
    def for_each(self, consumer: Consumer) -> None:
        """Call ``consumer(key, value)`` for each entry until it returns false."""

    @abstractmethod
    def keys(self) -> list[str]:
        """Return all keys."""

    @abstractmethod
    def random_keys(self, limit: int) -> list[str]:
        """Return ``limit`` keys picked at random, possibly repeated."""

    @abstractmethod
    def random_distinct_keys(self, limit: int) -> list[str]:
        """Return up to ``limit`` distinct keys picked at random."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every key."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Return True when ``key`` is present."""


class MemoryDict(Dict):
    """A thread-safe dictionary held in memory."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._data.get(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def put(self, key: str, value: bytes) -> int:
        with self._lock:
            self._data[key] = bytes(value)
        return 1

    def put_if_absent(self, key: str, value: bytes) -> int:
        with self._lock:
            if key in self._data:
                return 0
            self._data[key] = bytes(value)
            return 1

    def put_if_exists(self, key: str, value: bytes) -> int:
        with self._lock:
            if key not in self._data:
                return 0
            self._data[key] = bytes(value)
            return 1

    def remove(self, key: str) -> int:
        with self._lock:
            if key in self._data:
                del self._data[key]
                return 1
            return 0

    def for_each(self, consumer: Consumer) -> None:
        with self._lock:
            items = list(self._data.items())
        for key, value in items:
            if not consumer(_key_bytes(key), value):
                break

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)

    def random_keys(self, limit: int) -> list[str]:
        keys = self.keys()
        if not keys:
            return []
        return [random.choice(keys) for _ in range(max(0, limit))]

    def random_distinct_keys(self, limit: int) -> list[str]:
        keys = self.keys()
        return random.sample(keys, min(max(0, limit), len(keys)))

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._data