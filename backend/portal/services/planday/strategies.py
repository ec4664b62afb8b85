"""
Request-shape variants for Planday quirks.

The API accepts different date formats, pagination parameters and endpoint
casings depending on account configuration and API version. Each quirk is
listed here as an ordered tuple of variants; the aggregators walk the tuple
and stop at the first variant that works.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Awaitable, Callable, Iterable

import httpx

from portal.services.planday.errors import ExternalApiError

logger = logging.getLogger("staff-portal.planday.strategies")

PAGE_SIZE: int = 200
MAX_PAGES: int = 200


# ── Day windows ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DayWindow:
    label: str
    start: str
    end: str


def whole_day_windows(day: date) -> list[DayWindow]:
    """Full-day ranges in priority order: seconds, date-only, minutes."""
    d, nxt = day.isoformat(), (day + timedelta(days=1)).isoformat()
    return [
        DayWindow("seconds", f"{d}T00:00:00", f"{nxt}T00:00:00"),
        DayWindow("date", d, nxt),
        DayWindow("minutes", f"{d}T00:00", f"{nxt}T00:00"),
    ]


def half_day_windows(day: date) -> list[DayWindow]:
    """Two half-day ranges, used when every whole-day format is rejected (DST transition days)."""
    d, nxt = day.isoformat(), (day + timedelta(days=1)).isoformat()
    return [
        DayWindow("am", f"{d}T00:00:00", f"{d}T12:00:00"),
        DayWindow("pm", f"{d}T12:00:00", f"{nxt}T00:00:00"),
    ]


# ── Pagination conventions ────────────────────────────────────────────────────

@dataclass(frozen=True)
class PagingConvention:
    name: str
    size_key: str
    position_key: str
    by_page: bool = False   # position counts pages (1-based) instead of rows

    def params(self, index: int, page_size: int = PAGE_SIZE) -> dict[str, str]:
        position = index + 1 if self.by_page else index * page_size
        return {self.size_key: str(page_size), self.position_key: str(position)}


PAGING_CONVENTIONS: tuple[PagingConvention, ...] = (
    PagingConvention("limit/offset", "limit", "offset"),
    PagingConvention("page/pageSize", "pageSize", "page", by_page=True),
    PagingConvention("top/skip", "top", "skip"),
    PagingConvention("take/skip", "take", "skip"),
)


# ── Endpoint variants ─────────────────────────────────────────────────────────

SHIFT_TYPE_ENDPOINTS: tuple[str, ...] = (
    "/scheduling/v1.0/shifttypes",
    "/scheduling/v1.0/shiftTypes",
    "/schedule/v1.0/shifttypes",
    "/schedule/v1.0/shiftTypes",
)

EMPLOYEE_GROUP_ENDPOINTS: tuple[str, ...] = (
    "/hr/v1.0/employeegroups",
    "/hr/v1/EmployeeGroups",
)


async def probe_endpoints(
    variants: Iterable[str],
    fetch: Callable[[str], Awaitable[list]],
) -> list:
    """
    Return the first non-empty list produced by ``fetch(variant)``.

    401/403 stop the probe (permissions, not shape); any other upstream or
    transport failure moves on to the next variant. Exhaustion yields [].
    """
    for variant in variants:
        try:
            items = await fetch(variant)
        except ExternalApiError as e:
            if e.is_auth_failure:
                raise
            logger.debug(f"endpoint variant {variant} rejected: {e.status}")
            continue
        except httpx.TransportError as e:
            logger.debug(f"endpoint variant {variant} unreachable: {type(e).__name__}")
            continue
        if items:
            return items
    return []
