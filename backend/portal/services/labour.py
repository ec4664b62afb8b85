"""Scheduled labour cost: shift hours x hourly rate, summed over a date range."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

import httpx

from portal.models.planday_models import LabourResponse, ShiftRecord
from portal.services.planday.errors import ExternalApiError
from portal.services.planday.normalize import parse_timestamp, to_local_date_key
from portal.services.shift_aggregator import ShiftAggregator

logger = logging.getLogger("staff-portal.labour")


@dataclass(frozen=True)
class LabourRates:
    default: float
    by_department: dict[str, float] = field(default_factory=dict)

    def for_department(self, department_id: Optional[str]) -> float:
        if not department_id:
            return self.default
        return self.by_department.get(str(department_id), self.default)


def days_between(start: date, end: date) -> list[date]:
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def shift_hours(record: ShiftRecord) -> float:
    start, end = parse_timestamp(record.start_iso), parse_timestamp(record.end_iso)
    if start is None or end is None:
        return 0.0
    # Mixed naive/aware payloads cannot be subtracted; treat them as unpriced.
    if (start.tzinfo is None) != (end.tzinfo is None):
        return 0.0
    seconds = (end - start).total_seconds()
    return seconds / 3600 if seconds > 0 else 0.0


class LabourCalculator:
    def __init__(self, shifts: ShiftAggregator, rates: LabourRates, tz: str):
        self.shifts = shifts
        self.rates = rates
        self.tz = tz

    def day_cost(self, records: list[ShiftRecord], day: date) -> float:
        """Cost of the shifts that start on ``day`` in the reporting timezone."""
        key = day.isoformat()
        total = 0.0
        for r in records:
            if not r.start_iso or to_local_date_key(r.start_iso, self.tz) != key:
                continue
            total += shift_hours(r) * self.rates.for_department(r.department_id)
        return total

    async def daily_costs(
        self, department_ids: list[str], start: date, end: date
    ) -> tuple[dict[str, float], list[str]]:
        """
        Scheduled cost per ``YYYY-MM-DD`` from ``start`` to ``end``.

        A day whose shifts cannot be fetched is left out and listed in the
        second element; auth failures propagate.
        """
        costs: dict[str, float] = {}
        failed: list[str] = []
        for day in days_between(start, end):
            try:
                records = await self.shifts.day(department_ids, day)
            except (ExternalApiError, httpx.TransportError) as e:
                if isinstance(e, ExternalApiError) and e.is_auth_failure:
                    raise
                logger.warning(f"labour: skipping {day}, shifts unavailable: {e}")
                failed.append(day.isoformat())
                continue
            costs[day.isoformat()] = self.day_cost(records, day)
        return costs, failed

    async def scheduled_cost(self, department_ids: list[str], start: date, end: date) -> LabourResponse:
        costs, failed = await self.daily_costs(department_ids, start, end)
        return LabourResponse(
            week_labour_scheduled=round(sum(costs.values()), 2),
            days_counted=len(costs),
            days_failed=failed,
        )
