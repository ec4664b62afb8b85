"""
test_response_cache.py — TTL + LRU in-memory backend and the ResponseCache front.
"""

import asyncio

import pytest

from portal.services.response_cache import InMemoryBackend, ResponseCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestInMemoryBackend:

    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        backend = InMemoryBackend(clock=clock)
        backend.set("k", "v", ttl=10)

        clock.now = 9.9
        assert backend.get("k") == "v"
        clock.now = 10.0
        assert backend.get("k") is None
        assert len(backend) == 0

    def test_least_recently_used_evicted(self):
        backend = InMemoryBackend(maxsize=2, clock=FakeClock())
        backend.set("a", 1, ttl=60)
        backend.set("b", 2, ttl=60)
        backend.get("a")             # a is now most recent
        backend.set("c", 3, ttl=60)

        assert backend.get("b") is None
        assert backend.get("a") == 1
        assert backend.get("c") == 3

    def test_overwrite_does_not_evict(self):
        backend = InMemoryBackend(maxsize=2, clock=FakeClock())
        backend.set("a", 1, ttl=60)
        backend.set("b", 2, ttl=60)
        backend.set("a", 10, ttl=60)

        assert (backend.get("a"), backend.get("b")) == (10, 2)

    def test_delete_and_clear(self):
        backend = InMemoryBackend(clock=FakeClock())
        backend.set("a", 1, ttl=60)
        backend.set("b", 2, ttl=60)
        backend.delete("a")
        backend.delete("missing")
        assert backend.get("a") is None
        backend.clear()
        assert len(backend) == 0

    def test_invalid_maxsize(self):
        with pytest.raises(ValueError):
            InMemoryBackend(maxsize=0)


class TestResponseCache:

    def test_key_independent_of_department_order(self):
        assert ResponseCache.make_key(["2", "1"], "2025-01-06") == ResponseCache.make_key(["1", "2"], "2025-01-06")
        assert ResponseCache.make_key(["1", "2"], "2025-01-06") == "1,2|2025-01-06"

    def test_get_or_compute_miss_then_hit(self):
        cache = ResponseCache(ttl=120)
        calls = []

        async def factory():
            calls.append(1)
            return {"total": 5}

        async def run():
            return await cache.get_or_compute("k", factory), await cache.get_or_compute("k", factory)

        (first, hit1), (second, hit2) = asyncio.run(run())

        assert (hit1, hit2) == (False, True)
        assert first == second == {"total": 5}
        assert len(calls) == 1

    def test_factory_failure_not_cached(self):
        cache = ResponseCache(ttl=120)

        async def broken():
            raise RuntimeError("upstream down")

        with pytest.raises(RuntimeError):
            asyncio.run(cache.get_or_compute("k", broken))
        assert cache.get("k") is None

    def test_expiry_uses_configured_ttl(self):
        clock = FakeClock()
        cache = ResponseCache(backend=InMemoryBackend(clock=clock), ttl=5)
        cache.put("k", 1)
        clock.now = 5.0
        assert cache.get("k") is None

    @pytest.mark.parametrize("ttl", [0, -1])
    def test_invalid_ttl(self, ttl):
        with pytest.raises(ValueError):
            ResponseCache(ttl=ttl)
