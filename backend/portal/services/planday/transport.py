"""
Resilient fetch for Planday resource calls.

Transport-level resilience only: a 401 triggers one token refresh and a
retry, 429/502/503 and connection failures back off exponentially
(0.5s, 1s, 2s, ...). Every other status is handed back to the caller.
"""
import time
import asyncio
import logging
from typing import Awaitable, Callable, Optional

import httpx

from portal.config import BACKOFF_BASE_S, DEFAULT_MAX_RETRIES, RETRYABLE_STATUSES
from portal.services.planday.token import TokenProvider
from portal.services.perf_monitor import tracker

logger = logging.getLogger("staff-portal.planday.transport")

Sleep = Callable[[float], Awaitable[None]]


def backoff_delay(attempt: int) -> float:
    return BACKOFF_BASE_S * (2 ** attempt)


async def fetch_with_retry(
    http: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    tokens: TokenProvider,
    headers: dict,
    max_retries: int = DEFAULT_MAX_RETRIES,
    sleep: Sleep = asyncio.sleep,
    **kwargs,
) -> httpx.Response:
    """
    Send ``method url`` with ``headers`` and retry on transient failures.

    ``headers["Authorization"]`` is rewritten after a 401-triggered refresh.
    Raises the last ``httpx.TransportError`` once ``max_retries`` is spent.
    """
    path = httpx.URL(url).path
    attempt = 0
    refreshed = False
    last_error: Optional[Exception] = None

    while attempt <= max_retries:
        start = time.perf_counter()
        try:
            res = await http.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as e:
            tracker.record_attempt(path, round((time.perf_counter() - start) * 1000, 2))
            tracker.record_error(path)
            last_error = e
            if attempt >= max_retries:
                logger.error(f"Planday {method} {path} failed after {attempt + 1} attempts: {e}")
                raise
            delay = backoff_delay(attempt)
            logger.warning(f"Planday {method} {path} transport error ({type(e).__name__}), retrying in {delay}s")
            tracker.record_retry()
            await sleep(delay)
            attempt += 1
            continue

        tracker.record_attempt(path, round((time.perf_counter() - start) * 1000, 2))

        if res.status_code == 401 and not refreshed and attempt < max_retries:
            logger.warning(f"Planday {method} {path} unauthorized, refreshing token")
            tokens.invalidate()
            headers["Authorization"] = f"Bearer {await tokens.get_access_token()}"
            refreshed = True
            tracker.record_retry()
            attempt += 1
            continue

        if res.status_code in RETRYABLE_STATUSES and attempt < max_retries:
            delay = backoff_delay(attempt)
            logger.warning(f"Planday {method} {path} returned {res.status_code}, retrying in {delay}s")
            tracker.record_retry()
            await sleep(delay)
            attempt += 1
            continue

        if not res.is_success:
            tracker.record_error(path)
        return res

    raise last_error or httpx.TransportError("Network error")
