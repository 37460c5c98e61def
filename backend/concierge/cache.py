from __future__ import annotations
import threading
import time
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

T = TypeVar("T")


class TTLCache(Generic[T]):
    """Small keyed cache whose values expire after a fixed number of seconds.

    Shared across requests, so reads and writes go through one lock.
    The clock is injectable for tests.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._items: Dict[str, Tuple[float, T]] = {}
        self._lock = threading.Lock()

    def is_expired(self, key: str) -> bool:
        with self._lock:
            item = self._items.get(key)
            return item is None or self._clock() - item[0] >= self.ttl_seconds

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            stored_at, value = item
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._items[key]
                return None
            return value

    def set(self, key: str, value: T) -> None:
        with self._lock:
            self._items[key] = (self._clock(), value)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
