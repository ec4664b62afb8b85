"""Upstream call monitoring for the Planday integration."""
import time
import logging
import threading
import functools
from typing import Any, Callable, Dict

logger = logging.getLogger("staff-portal.perf")


def timed_async(func: Callable) -> Callable:
    """
    Decorator that measures and logs execution time for async functions.

    Usage::

        @timed_async
        async def day(...):
            ...
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return await func(*args, **kwargs)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.debug(
                "async function timed",
                extra={
                    "function": func.__qualname__,
                    "duration_ms": duration_ms,
                },
            )
    return wrapper


class UpstreamTracker:
    """
    Thread-safe in-memory tracker for outbound Planday traffic.

    Tracks:
    - Attempts per upstream path, with average duration
    - Retries (backoff and unauthorized) and token refreshes
    - Error responses and transport failures per upstream path
    - Revenue cache hits and misses
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._attempts: Dict[str, int] = {}
        self._durations: Dict[str, float] = {}
        self._errors: Dict[str, int] = {}
        self._retries: int = 0
        self._token_refreshes: int = 0
        self._token_invalidations: int = 0
        self._cache_hits: int = 0
        self._cache_misses: int = 0

    # ------------------------------------------------------------------
    # Public write API
    # ------------------------------------------------------------------

    def record_attempt(self, path: str, duration_ms: float) -> None:
        with self._lock:
            self._attempts[path] = self._attempts.get(path, 0) + 1
            self._durations[path] = self._durations.get(path, 0.0) + duration_ms

    def record_error(self, path: str) -> None:
        with self._lock:
            self._errors[path] = self._errors.get(path, 0) + 1

    def record_retry(self) -> None:
        with self._lock:
            self._retries += 1

    def record_token_refresh(self) -> None:
        with self._lock:
            self._token_refreshes += 1

    def record_token_invalidation(self) -> None:
        with self._lock:
            self._token_invalidations += 1

    def record_cache(self, hit: bool) -> None:
        with self._lock:
            if hit:
                self._cache_hits += 1
            else:
                self._cache_misses += 1

    # ------------------------------------------------------------------
    # Public read API
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """
        Return a snapshot of all collected metrics.

        Returns
        -------
        dict with keys:
            upstream_calls          : int   (attempts across all paths)
            upstream_errors         : int
            retries                 : int
            token_refreshes         : int
            token_invalidations     : int
            cache_hits / cache_misses : int
            calls_by_path           : dict  {path: attempts}
            errors_by_path          : dict  {path: count}
            avg_duration_ms_by_path : dict  {path: avg_ms}
        """
        with self._lock:
            avgs = {
                path: round(self._durations.get(path, 0.0) / count, 2)
                for path, count in self._attempts.items()
                if count
            }
            return {
                "upstream_calls": sum(self._attempts.values()),
                "upstream_errors": sum(self._errors.values()),
                "retries": self._retries,
                "token_refreshes": self._token_refreshes,
                "token_invalidations": self._token_invalidations,
                "cache_hits": self._cache_hits,
                "cache_misses": self._cache_misses,
                "calls_by_path": dict(self._attempts),
                "errors_by_path": dict(self._errors),
                "avg_duration_ms_by_path": avgs,
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._attempts.clear()
            self._durations.clear()
            self._errors.clear()
            self._retries = 0
            self._token_refreshes = 0
            self._token_invalidations = 0
            self._cache_hits = 0
            self._cache_misses = 0


# Module-level singleton; import this instance everywhere else.
tracker = UpstreamTracker()
