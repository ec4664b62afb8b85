"""
conftest.py — Shared pytest fixtures for the staff portal backend test suite.

No live Planday account is needed: every test talks to ``FakePlanday``, a
scripted stand-in for the token endpoint and the open API mounted behind
``httpx.MockTransport``.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``portal.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any portal imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

import httpx  # noqa: E402

from portal.config import PlandayConfig  # noqa: E402
from portal.services.perf_monitor import tracker  # noqa: E402
from portal.services.planday.client import PlandayClient  # noqa: E402

TOKEN_URL = "https://id.planday.test/connect/token"
API_BASE = "https://openapi.planday.test"


def _fresh(response: httpx.Response) -> httpx.Response:
    """Copy of a canned response; httpx responses are bound to one request."""
    return httpx.Response(response.status_code, headers=response.headers, content=response.content)


class FakePlanday:
    """
    Scripted Planday.

    ``routes`` maps a request path to one of:
      - an ``httpx.Response`` returned for every request,
      - a list of responses consumed in order (the last one repeats),
      - a callable ``handler(request) -> httpx.Response`` (may raise).
    Unknown paths answer 404. Token exchanges are counted and answered with
    ``tok-<n>`` unless ``token_response`` is set.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []
        self.token_calls = 0
        self.token_response = None
        self.expires_in = 3600

    def on(self, path, handler):
        self.routes[path] = handler
        return self

    def calls_to(self, path):
        return [r for r in self.requests if r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == httpx.URL(TOKEN_URL).path:
            self.token_calls += 1
            if self.token_response is not None:
                return _fresh(self.token_response)
            return httpx.Response(
                200, json={"access_token": f"tok-{self.token_calls}", "expires_in": self.expires_in}
            )

        self.requests.append(request)
        handler = self.routes.get(request.url.path)
        if handler is None:
            return httpx.Response(404, text="not found")
        if isinstance(handler, httpx.Response):
            return _fresh(handler)
        if isinstance(handler, list):
            return _fresh(handler.pop(0) if len(handler) > 1 else handler[0])
        return handler(request)


class RecordedSleep:
    """Replacement for asyncio.sleep that records the requested delays."""

    def __init__(self):
        self.calls = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def reset_tracker():
    """Upstream counters are process-global; start every test from zero."""
    tracker.reset()
    yield
    tracker.reset()


@pytest.fixture
def planday_config():
    return PlandayConfig(
        client_id="client-123",
        refresh_token="refresh-abc",
        token_url=TOKEN_URL,
        api_base=API_BASE,
        timezone="Europe/London",
        labour_rate_default=12.5,
        labour_rate_overrides={"2": 15.0},
    )


@pytest.fixture
def fake_planday():
    return FakePlanday()


@pytest.fixture
def recorded_sleep():
    return RecordedSleep()


@pytest.fixture
def mock_http(fake_planday):
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_planday))


@pytest.fixture
def planday_client(planday_config, mock_http, recorded_sleep):
    """PlandayClient wired to FakePlanday; backoff sleeps are recorded, not slept."""
    return PlandayClient(planday_config, http=mock_http, sleep=recorded_sleep)


@pytest.fixture
def make_test_client(planday_client):
    """
    Factory for a FastAPI TestClient around ``create_app`` with the mocked
    PlandayClient injected. Use as a context manager so the lifespan runs.
    """
    from fastapi.testclient import TestClient
    from portal.main import create_app

    def _make(config=None, client=None):
        app = create_app(config=config or planday_client.config, client=client or planday_client)
        return TestClient(app)

    return _make
