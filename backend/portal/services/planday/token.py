"""
Planday OAuth token provider.

Exchanges the long-lived refresh token for a short-lived bearer token and
caches it on the provider instance. One provider is owned by each
PlandayClient; refreshes are serialized behind an asyncio.Lock so concurrent
callers waiting on an expired token share a single exchange.
"""
import time
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from portal.config import (
    PlandayConfig,
    TOKEN_MAX_TTL_S,
    TOKEN_MIN_TTL_S,
    TOKEN_SAFETY_BUFFER_S,
)
from portal.services.planday.errors import PlandayAuthError, PlandayConfigError
from portal.services.perf_monitor import tracker

logger = logging.getLogger("staff-portal.planday.token")


@dataclass(frozen=True)
class CachedToken:
    access_token: str
    expires_at: float


def clamp_ttl(expires_in) -> int:
    """Clamp the provider-declared lifetime to [60, 3600] seconds; garbage counts as the maximum."""
    try:
        ttl = int(float(expires_in))
    except (TypeError, ValueError, OverflowError):
        ttl = TOKEN_MAX_TTL_S
    return max(TOKEN_MIN_TTL_S, min(ttl, TOKEN_MAX_TTL_S))


class TokenProvider:
    def __init__(
        self,
        config: PlandayConfig,
        http: httpx.AsyncClient,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self._http = http
        self._clock = clock
        self._cached: Optional[CachedToken] = None
        self._lock = asyncio.Lock()

    @property
    def cached(self) -> Optional[CachedToken]:
        return self._cached

    def _is_fresh(self, now: float) -> bool:
        return self._cached is not None and self._cached.expires_at - TOKEN_SAFETY_BUFFER_S > now

    async def get_access_token(self) -> str:
        if self._is_fresh(self._clock()):
            return self._cached.access_token

        async with self._lock:
            # Another caller may have refreshed while we waited for the lock.
            now = self._clock()
            if self._is_fresh(now):
                return self._cached.access_token

            payload = await self._exchange()
            self._cached = CachedToken(
                access_token=payload["access_token"],
                expires_at=now + clamp_ttl(payload.get("expires_in")),
            )
            tracker.record_token_refresh()
            logger.info("Planday access token refreshed")
            return self._cached.access_token

    def invalidate(self) -> None:
        self._cached = None
        tracker.record_token_invalidation()

    async def _exchange(self) -> dict:
        if not self.config.has_credentials:
            raise PlandayConfigError("Missing PLANDAY_CLIENT_ID or PLANDAY_REFRESH_TOKEN")

        res = await self._http.post(
            self.config.token_url,
            data={
                "client_id": self.config.client_id,
                "grant_type": "refresh_token",
                "refresh_token": self.config.refresh_token,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if not res.is_success:
            logger.error(f"Planday token exchange failed with status {res.status_code}")
            raise PlandayAuthError(
                f"Planday token exchange failed: {res.status_code} {res.text[:300]}",
                status=res.status_code,
                body=res.text,
            )

        try:
            payload = res.json()
        except ValueError:
            raise PlandayAuthError("Planday token endpoint returned invalid JSON", status=res.status_code)
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise PlandayAuthError("Planday token endpoint returned no access_token", status=res.status_code)
        return payload
