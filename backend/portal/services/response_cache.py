"""
Response cache for aggregation routes.

A flat-TTL cache in front of bursty UI re-fetching. It is an optimization,
not a correctness mechanism: a cold process or a second instance simply
calls Planday again. The backing store is pluggable; the in-process
``InMemoryBackend`` is the only one shipped.
"""
from __future__ import annotations

import time
import logging
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol

from portal.services.perf_monitor import tracker

logger = logging.getLogger("staff-portal.cache")


class CacheBackend(Protocol):
    def get(self, key: str) -> Optional[Any]: ...
    def set(self, key: str, value: Any, ttl: float) -> None: ...
    def delete(self, key: str) -> None: ...
    def clear(self) -> None: ...


class InMemoryBackend:
    """Bounded LRU map of ``key -> (value, inserted_at, ttl)`` on the monotonic clock."""

    def __init__(self, maxsize: int = 256, clock: Callable[[], float] = time.monotonic):
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self._maxsize = maxsize
        self._clock = clock
        self._data: OrderedDict[str, tuple[Any, float, float]] = OrderedDict()

    def get(self, key: str) -> Optional[Any]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, inserted_at, ttl = entry
        if self._clock() - inserted_at >= ttl:
            del self._data[key]
            return None
        self._data.move_to_end(key)
        return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        if key in self._data:
            del self._data[key]
        elif len(self._data) >= self._maxsize:
            self._data.popitem(last=False)
        self._data[key] = (value, self._clock(), ttl)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for _, inserted_at, ttl in self._data.values() if now - inserted_at < ttl)


class ResponseCache:
    def __init__(self, backend: Optional[CacheBackend] = None, ttl: float = 120.0):
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        self.backend = backend if backend is not None else InMemoryBackend()
        self.ttl = ttl

    @staticmethod
    def make_key(department_ids: Iterable[str], day: str) -> str:
        return ",".join(sorted(str(d) for d in department_ids)) + "|" + day

    def get(self, key: str) -> Optional[Any]:
        return self.backend.get(key)

    def put(self, key: str, value: Any) -> None:
        self.backend.set(key, value, self.ttl)

    def clear(self) -> None:
        self.backend.clear()

    async def get_or_compute(self, key: str, factory: Callable[[], Awaitable[Any]]) -> tuple[Any, bool]:
        """Return ``(value, hit)``; failures from ``factory`` are not cached."""
        cached = self.get(key)
        if cached is not None:
            tracker.record_cache(hit=True)
            return cached, True

        tracker.record_cache(hit=False)
        value = await factory()
        self.put(key, value)
        logger.debug(f"cached response for {key} ({self.ttl}s)")
        return value, False
