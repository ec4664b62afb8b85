"""
Weekly revenue reconciliation.

Actual revenue and budgeted revenue come from two independent Planday
endpoints that disagree on date shape (timestamps, bare dates, business-date
field names). Every row is bucketed onto a calendar day in the reporting
timezone and the two streams are matched by that day only.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import date, timedelta
from typing import Awaitable, Callable, Iterable

from portal.models.planday_models import RevenueDay, RevenueScope, RevenueSummary
from portal.services.perf_monitor import timed_async
from portal.services.planday.client import PlandayClient
from portal.services.planday.normalize import pick_first, pick_number, to_local_date_key
from portal.services.response_cache import ResponseCache

logger = logging.getLogger("staff-portal.revenue")

DATE_KEYS = (
    "date", "Date", "businessDate", "BusinessDate", "revenueDate", "RevenueDate",
    "day", "Day", "dateTime", "DateTime", "timestamp", "startDate", "StartDate",
)
ACTUAL_VALUE_KEYS = (
    "value", "Value", "amount", "Amount", "revenue", "Revenue",
    "total", "Total", "turnover", "Turnover",
)
BUDGET_VALUE_KEYS = ("budget", "Budget") + ACTUAL_VALUE_KEYS


def week_bounds(anchor: date) -> tuple[date, date]:
    """Monday and Sunday of the week containing ``anchor``."""
    monday = anchor - timedelta(days=anchor.weekday())
    return monday, monday + timedelta(days=6)


def bucket_by_day(rows: Iterable[dict], value_keys: tuple[str, ...], tz: str) -> dict[str, float]:
    """Sum row values per local calendar day; rows without a usable date or value are dropped."""
    totals: dict[str, float] = {}
    dropped = 0
    for row in rows:
        if not isinstance(row, dict):
            dropped += 1
            continue
        day_key = to_local_date_key(pick_first(row, *DATE_KEYS), tz)
        value = pick_number(row, *value_keys)
        if day_key is None or value is None:
            dropped += 1
            continue
        totals[day_key] = totals.get(day_key, 0.0) + value
    if dropped:
        logger.debug(f"dropped {dropped} revenue rows without a date or value")
    return totals


def reconcile(
    actual_by_day: dict[str, float],
    budget_by_day: dict[str, float],
    department_ids: list[str],
    anchor: date,
    tz: str,
) -> RevenueSummary:
    monday, sunday = week_bounds(anchor)
    week_days = [monday + timedelta(days=i) for i in range(7)]

    days = [
        RevenueDay(
            date=d.isoformat(),
            actual=round(actual_by_day.get(d.isoformat(), 0.0), 2),
            budget=round(budget_by_day.get(d.isoformat(), 0.0), 2),
        )
        for d in week_days
    ]
    before_anchor = [day for day, d in zip(days, week_days) if d < anchor]

    return RevenueSummary(
        scope=RevenueScope(
            department_ids=department_ids,
            anchor_ymd=anchor.isoformat(),
            week_start=monday.isoformat(),
            week_end=sunday.isoformat(),
            timezone=tz,
        ),
        days=days,
        today_actual=round(actual_by_day.get(anchor.isoformat(), 0.0), 2),
        week_actual=round(sum(d.actual for d in days), 2),
        week_actual_to_date=round(sum(d.actual for d in before_anchor), 2),
        week_budget=round(sum(d.budget for d in days), 2),
        week_budget_to_date=round(sum(d.budget for d in before_anchor), 2),
    )


class RevenueAggregator:
    def __init__(self, client: PlandayClient, cache: ResponseCache, tz: str):
        self.client = client
        self.cache = cache
        self.tz = tz

    async def _fetch_stream(
        self,
        fetch: Callable[[str, str, str], Awaitable[list]],
        department_ids: list[str],
        monday: date,
        sunday: date,
    ) -> list:
        batches = await asyncio.gather(
            *(fetch(dep, monday.isoformat(), sunday.isoformat()) for dep in department_ids)
        )
        return [row for batch in batches for row in batch]

    async def compute(self, department_ids: list[str], anchor: date) -> RevenueSummary:
        monday, sunday = week_bounds(anchor)
        actual_rows, budget_rows = await asyncio.gather(
            self._fetch_stream(self.client.list_revenue, department_ids, monday, sunday),
            self._fetch_stream(self.client.list_revenue_budgets, department_ids, monday, sunday),
        )
        return reconcile(
            bucket_by_day(actual_rows, ACTUAL_VALUE_KEYS, self.tz),
            bucket_by_day(budget_rows, BUDGET_VALUE_KEYS, self.tz),
            department_ids,
            anchor,
            self.tz,
        )

    @timed_async
    async def week(self, department_ids: list[str], anchor: date) -> RevenueSummary:
        department_ids = sorted(dict.fromkeys(str(d) for d in department_ids))
        key = ResponseCache.make_key(department_ids, anchor.isoformat())
        summary, hit = await self.cache.get_or_compute(key, lambda: self.compute(department_ids, anchor))
        if hit:
            return summary.model_copy(update={"cached": True})
        return summary
