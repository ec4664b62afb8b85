"""
Planday integration configuration: single source of truth for credentials,
endpoint overrides, probing constants and reporting defaults.

Import from here in all services rather than reading os.environ directly.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

# ── Endpoints ─────────────────────────────────────────────────────────────────
DEFAULT_TOKEN_URL = "https://id.planday.com/connect/token"
DEFAULT_API_BASE = "https://openapi.planday.com"

# ── Token lifetime policy (seconds) ───────────────────────────────────────────
TOKEN_SAFETY_BUFFER_S: int = 30
TOKEN_MIN_TTL_S: int = 60
TOKEN_MAX_TTL_S: int = 3600

# ── Retry policy ──────────────────────────────────────────────────────────────
DEFAULT_MAX_RETRIES: int = 3
BACKOFF_BASE_S: float = 0.5
RETRYABLE_STATUSES: frozenset[int] = frozenset({429, 502, 503})

# ── Aggregation defaults ──────────────────────────────────────────────────────
DEFAULT_SHIFT_STATUSES: tuple[str, ...] = ("Published", "Open")
EMPLOYEE_LOOKUP_CONCURRENCY: int = 6
DEPARTMENT_PAGE_SIZE: int = 50
DEPARTMENT_MAX_PAGES: int = 20

DEFAULT_TIMEZONE = "Europe/London"
DEFAULT_REVENUE_CACHE_TTL_S: float = 120.0
DEFAULT_LABOUR_RATE: float = 12.5

# Payroll as a percentage of sales; unset means no target is reported.
DEFAULT_PAYROLL_TARGET_PCT: Optional[float] = None


def _env_bool(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def parse_rate_overrides(raw: str) -> dict[str, float]:
    """Parse ``"123:13.5,456:14"`` into ``{"123": 13.5, "456": 14.0}``; bad pairs are skipped."""
    rates: dict[str, float] = {}
    for pair in raw.split(","):
        dept, sep, rate = pair.partition(":")
        if not sep or not dept.strip():
            continue
        try:
            rates[dept.strip()] = float(rate)
        except ValueError:
            continue
    return rates


@dataclass(frozen=True)
class PlandayConfig:
    client_id: str = ""
    refresh_token: str = ""
    client_secret: str = ""
    token_url: str = DEFAULT_TOKEN_URL
    api_base: str = DEFAULT_API_BASE
    http_timeout_s: Optional[float] = None
    timezone: str = DEFAULT_TIMEZONE
    revenue_cache_ttl_s: float = DEFAULT_REVENUE_CACHE_TTL_S
    labour_rate_default: float = DEFAULT_LABOUR_RATE
    labour_rate_overrides: dict[str, float] = field(default_factory=dict)
    payroll_target_pct: Optional[float] = DEFAULT_PAYROLL_TARGET_PCT
    payroll_target_overrides: dict[str, float] = field(default_factory=dict)
    debug_routes: bool = False

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.refresh_token)

    @classmethod
    def from_env(cls) -> "PlandayConfig":
        return cls(
            client_id=os.getenv("PLANDAY_CLIENT_ID", "").strip(),
            refresh_token=os.getenv("PLANDAY_REFRESH_TOKEN", "").strip(),
            client_secret=os.getenv("PLANDAY_CLIENT_SECRET", "").strip(),
            token_url=os.getenv("PLANDAY_TOKEN_URL") or DEFAULT_TOKEN_URL,
            api_base=(os.getenv("PLANDAY_API_BASE") or DEFAULT_API_BASE).rstrip("/"),
            http_timeout_s=_env_float("PLANDAY_HTTP_TIMEOUT", None),
            timezone=os.getenv("REPORTING_TIMEZONE") or DEFAULT_TIMEZONE,
            revenue_cache_ttl_s=_env_float("REVENUE_CACHE_TTL_SECONDS", DEFAULT_REVENUE_CACHE_TTL_S),
            labour_rate_default=_env_float("LABOUR_RATE_DEFAULT", DEFAULT_LABOUR_RATE),
            labour_rate_overrides=parse_rate_overrides(os.getenv("LABOUR_RATE_OVERRIDES", "")),
            payroll_target_pct=_env_float("PAYROLL_TARGET_PCT", DEFAULT_PAYROLL_TARGET_PCT),
            payroll_target_overrides=parse_rate_overrides(os.getenv("PAYROLL_TARGET_OVERRIDES", "")),
            debug_routes=_env_bool("PORTAL_DEBUG_ROUTES"),
        )
