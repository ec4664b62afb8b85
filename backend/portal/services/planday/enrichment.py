"""
Optional enrichment lookups (shift types, employee groups, employee names).

None of these may fail a request: every lookup is wrapped in ``settle`` which
turns an upstream failure into an ``Enrichment`` carrying the error, and the
aggregator picks the documented default with ``unwrap_or``.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Generic, Iterable, Optional, TypeVar

import httpx

from portal.config import EMPLOYEE_LOOKUP_CONCURRENCY
from portal.services.planday.client import PlandayClient
from portal.services.planday.errors import ExternalApiError, PlandayAuthError
from portal.services.planday.normalize import (
    EmployeeDetail,
    employee_detail_from_payload,
    pick_first,
    placeholder_name,
    to_int,
)
from portal.services.planday.strategies import (
    EMPLOYEE_GROUP_ENDPOINTS,
    SHIFT_TYPE_ENDPOINTS,
    probe_endpoints,
)

logger = logging.getLogger("staff-portal.planday.enrichment")

T = TypeVar("T")

# Failures that degrade an enrichment instead of failing the request.
ENRICHMENT_FAILURES = (ExternalApiError, PlandayAuthError, httpx.HTTPError, ValueError)


@dataclass(frozen=True)
class Enrichment(Generic[T]):
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok and self.value is not None else default


async def settle(label: str, aw: Awaitable[T]) -> Enrichment[T]:
    try:
        return Enrichment(value=await aw)
    except ENRICHMENT_FAILURES as e:
        logger.warning(f"{label} enrichment unavailable: {e}")
        return Enrichment(error=str(e) or type(e).__name__)


def _names_by_id(items: Iterable[dict], default_name: str) -> dict[int, str]:
    out: dict[int, str] = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        item_id = to_int(pick_first(item, "id", "ID"))
        if item_id is None:
            continue
        out[item_id] = str(pick_first(item, "name", "Name") or default_name)
    return out


async def fetch_shift_types(client: PlandayClient, department_id: str) -> list:
    return await probe_endpoints(
        SHIFT_TYPE_ENDPOINTS, lambda path: client.list_shift_types(path, department_id)
    )


async def fetch_employee_groups(client: PlandayClient, department_id: Optional[str] = None) -> list:
    return await probe_endpoints(
        EMPLOYEE_GROUP_ENDPOINTS, lambda path: client.list_employee_groups(path, department_id)
    )


async def build_shift_type_map(client: PlandayClient, department_ids: list[str]) -> dict[int, str]:
    lists = await asyncio.gather(*(fetch_shift_types(client, d) for d in department_ids))
    return _names_by_id((t for lst in lists for t in lst), "Unknown")


async def build_employee_group_map(client: PlandayClient, department_ids: list[str]) -> dict[int, str]:
    lists = await asyncio.gather(*(fetch_employee_groups(client, d) for d in department_ids))
    return _names_by_id((g for lst in lists for g in lst), "Group")


async def resolve_employee_details(
    client: PlandayClient,
    ids: list[str],
    concurrency: int = EMPLOYEE_LOOKUP_CONCURRENCY,
) -> dict[str, EmployeeDetail]:
    """
    Names and primary groups for ``ids``.

    One batched request first; ids it did not resolve are looked up one by
    one with at most ``concurrency`` requests in flight. A failed single
    lookup yields the ``Employee #<id>`` placeholder.
    """
    out: dict[str, EmployeeDetail] = {}
    if not ids:
        return out

    try:
        for e in await client.get_employees(ids):
            if not isinstance(e, dict):
                continue
            emp_id = str(pick_first(e, "id", "ID") or "")
            if emp_id:
                out[emp_id] = employee_detail_from_payload(e)
    except ENRICHMENT_FAILURES as e:
        logger.debug(f"batched employee lookup failed, falling back to per-id: {e}")

    missing = [i for i in ids if i not in out]
    if not missing:
        return out

    semaphore = asyncio.Semaphore(concurrency)

    async def lookup(emp_id: str) -> None:
        async with semaphore:
            try:
                payload = await client.get_employee(emp_id)
            except ENRICHMENT_FAILURES:
                out[emp_id] = EmployeeDetail(name=placeholder_name(emp_id))
                return
        if isinstance(payload, dict):
            out[emp_id] = employee_detail_from_payload(payload, fallback_name=placeholder_name(emp_id))
        else:
            out[emp_id] = EmployeeDetail(name=placeholder_name(emp_id))

    await asyncio.gather(*(lookup(i) for i in missing))
    return out
