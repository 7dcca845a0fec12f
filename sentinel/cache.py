from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable


class Cache(ABC):
    """Minimal key/value cache with per-entry expiry."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        ...

    @abstractmethod
    def expire(self, key: str) -> None:
        ...


class MemoryTTLCache(Cache):
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            self.expire(key)
            return
        with self._lock:
            self._entries[key] = (self._clock() + float(ttl_seconds), value)

    def expire(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
