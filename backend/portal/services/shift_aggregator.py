"""
Day shift aggregation.

Answers "all shifts for these departments on this date": probes the day-window
formats Planday accepts, pages through each department x status combination,
enriches the result with shift types, employee groups and employee names,
and returns one deduplicated list sorted by start time.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Iterable, Optional, Union

from portal.config import DEFAULT_SHIFT_STATUSES
from portal.models.planday_models import ShiftRecord
from portal.services.perf_monitor import timed_async
from portal.services.planday.client import PlandayClient
from portal.services.planday.enrichment import (
    build_employee_group_map,
    build_shift_type_map,
    resolve_employee_details,
    settle,
)
from portal.services.planday.errors import ExternalApiError
from portal.services.planday.normalize import employee_ids_in, normalize_shifts, pick_first
from portal.services.planday.strategies import (
    MAX_PAGES,
    PAGE_SIZE,
    PAGING_CONVENTIONS,
    DayWindow,
    PagingConvention,
    half_day_windows,
    whole_day_windows,
)

logger = logging.getLogger("staff-portal.shifts")


def normalize_statuses(status: Union[str, Iterable[str], None]) -> list[str]:
    if status is None or status == "" or status == []:
        return list(DEFAULT_SHIFT_STATUSES)
    if isinstance(status, str):
        return [status]
    statuses = [str(s) for s in status if s]
    return statuses or list(DEFAULT_SHIFT_STATUSES)


def _first_exception(results: list) -> Optional[BaseException]:
    """Pick the error to surface from a gather: anything other than a shape error wins."""
    errors = [r for r in results if isinstance(r, BaseException)]
    for err in errors:
        if not (isinstance(err, ExternalApiError) and err.is_shape_error):
            return err
    return errors[0] if errors else None


class ShiftAggregator:
    def __init__(self, client: PlandayClient):
        self.client = client

    # ── Paging ────────────────────────────────────────────────────────────────

    async def _fetch_page(self, department_id: str, base: dict, paging: dict) -> list:
        items = await self.client.list_shifts(department_id, {**base, **paging})
        return [
            {**s, "_deptId": department_id, "_status": base.get("status")}
            for s in items
            if isinstance(s, dict)
        ]

    def _conventions_for(self, department_id: str, remembered: dict) -> list[PagingConvention]:
        known = remembered.get(department_id)
        if known is None:
            return list(PAGING_CONVENTIONS)
        return [known] + [c for c in PAGING_CONVENTIONS if c is not known]

    async def fetch_all_pages(self, department_id: str, base: dict, remembered: dict) -> list:
        """
        Page through shifts with the first convention Planday accepts.

        ``remembered`` maps department id to the convention that worked
        earlier in the same aggregation and is tried first.
        """
        for convention in self._conventions_for(department_id, remembered):
            out: list = []
            previous_ids: Optional[list] = None
            try:
                for index in range(MAX_PAGES):
                    page = await self._fetch_page(department_id, base, convention.params(index))
                    page_ids = [pick_first(s, "id", "ID") for s in page]
                    # Paging params silently ignored: the same page comes back again.
                    if page and page_ids == previous_ids:
                        break
                    out.extend(page)
                    if len(page) < PAGE_SIZE:
                        break
                    previous_ids = page_ids
            except ExternalApiError as e:
                if not e.is_shape_error:
                    raise
                logger.debug(f"paging convention {convention.name} rejected for department {department_id}")
                continue
            remembered[department_id] = convention
            return out

        return await self._fetch_page(department_id, base, {})

    # ── Windows ───────────────────────────────────────────────────────────────

    async def fetch_window(
        self,
        window: DayWindow,
        department_ids: list[str],
        statuses: list[str],
        remembered: dict,
    ) -> list:
        jobs = [
            self.fetch_all_pages(dep, {"from": window.start, "to": window.end, "status": st}, remembered)
            for dep in department_ids
            for st in statuses
        ]
        results = await asyncio.gather(*jobs, return_exceptions=True)
        err = _first_exception(results)
        if err is not None:
            raise err
        return [s for batch in results for s in batch]

    async def fetch_raw(self, department_ids: list[str], day: date, statuses: list[str]) -> list:
        remembered: dict = {}
        for window in whole_day_windows(day):
            try:
                return await self.fetch_window(window, department_ids, statuses, remembered)
            except ExternalApiError as e:
                if not e.is_shape_error:
                    raise
                logger.info(f"day window format '{window.label}' rejected ({e.status}) for {day}")

        logger.warning(f"all whole-day formats rejected for {day}, falling back to half-day windows")
        raw: list = []
        for window in half_day_windows(day):
            raw.extend(await self.fetch_window(window, department_ids, statuses, remembered))
        return raw

    # ── Public ────────────────────────────────────────────────────────────────

    async def enrich(self, raw: list, department_ids: list[str]) -> list[ShiftRecord]:
        types, groups, details = await asyncio.gather(
            settle("shift types", build_shift_type_map(self.client, department_ids)),
            settle("employee groups", build_employee_group_map(self.client, department_ids)),
            settle("employee details", resolve_employee_details(self.client, employee_ids_in(raw))),
        )
        return normalize_shifts(
            raw,
            details.unwrap_or({}),
            groups.unwrap_or({}),
            types.unwrap_or({}),
        )

    @timed_async
    async def day(
        self,
        department_ids: list[str],
        day: date,
        status: Union[str, Iterable[str], None] = None,
    ) -> list[ShiftRecord]:
        department_ids = list(dict.fromkeys(str(d) for d in department_ids))
        statuses = normalize_statuses(status)
        raw = await self.fetch_raw(department_ids, day, statuses)
        records = await self.enrich(raw, department_ids)
        logger.info(
            f"day aggregation {day}: {len(raw)} raw shifts, {len(records)} unique "
            f"across {len(department_ids)} departments"
        )
        return records
