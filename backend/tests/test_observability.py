"""
test_observability.py — JSON log formatting, upstream tracker and rate limiting.
"""

import asyncio
import json
import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient

from portal.services.logging_config import JSONFormatter
from portal.services.middleware import RateLimitMiddleware
from portal.services.perf_monitor import UpstreamTracker, timed_async


class TestJSONFormatter:

    def test_extra_fields_copied(self):
        record = logging.LogRecord("staff-portal", logging.INFO, __file__, 10, "request completed", None, None)
        record.request_id = "abc"
        record.http_status = 200

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "request completed"
        assert entry["level"] == "INFO"
        assert entry["request_id"] == "abc"
        assert entry["http_status"] == 200
        assert "duration_ms" not in entry


class TestUpstreamTracker:

    def test_counts_and_averages(self):
        t = UpstreamTracker()
        t.record_attempt("/a", 10.0)
        t.record_attempt("/a", 30.0)
        t.record_attempt("/b", 5.0)
        t.record_error("/a")
        t.record_retry()
        t.record_cache(hit=True)
        t.record_cache(hit=False)

        m = t.get_metrics()

        assert m["upstream_calls"] == 3
        assert m["upstream_errors"] == 1
        assert m["avg_duration_ms_by_path"] == {"/a": 20.0, "/b": 5.0}
        assert (m["retries"], m["cache_hits"], m["cache_misses"]) == (1, 1, 1)

    def test_reset(self):
        t = UpstreamTracker()
        t.record_attempt("/a", 1.0)
        t.record_token_refresh()
        t.reset()
        m = t.get_metrics()
        assert m["upstream_calls"] == 0
        assert m["token_refreshes"] == 0

    def test_timed_async_returns_result(self):
        @timed_async
        async def double(x):
            return x * 2

        assert asyncio.run(double(21)) == 42
        assert double.__name__ == "double"


class TestRateLimit:

    def _app(self, limit):
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware, limit=limit)

        @app.get("/health")
        async def health():
            return {"ok": True}

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        return TestClient(app)

    def test_limit_exceeded_returns_429(self):
        client = self._app(limit=2)
        statuses = [client.get("/ping").status_code for _ in range(3)]
        assert statuses == [200, 200, 429]
        assert "error" in client.get("/ping").json()

    def test_health_not_limited(self):
        client = self._app(limit=1)
        assert [client.get("/health").status_code for _ in range(3)] == [200, 200, 200]
