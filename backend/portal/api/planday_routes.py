"""
Planday routes consumed by the portal UI.

Aggregations (day shifts, weekly revenue, scheduled labour, payroll) plus
thin listings of Planday reference data. Upstream failures raised here are
turned into ``{"error": ...}`` responses by the handlers in
``portal.api.errors``.
"""
import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, Query
from jose import JWTError, jwt

from portal.api.deps import (
    get_config,
    get_labour_calculator,
    get_payroll_calculator,
    get_planday_client,
    get_revenue_aggregator,
    get_shift_aggregator,
    require_debug_routes,
)
from portal.api.errors import error_response
from portal.config import DEPARTMENT_MAX_PAGES, DEPARTMENT_PAGE_SIZE, PlandayConfig
from portal.models.planday_models import (
    DayRequest,
    DayResponse,
    Department,
    DepartmentIdsRequest,
    DepartmentsResponse,
    LabourRequest,
    LabourResponse,
    NamedItem,
    NamedItemsResponse,
    PayrollRequest,
    PayrollResponse,
    RevenueRequest,
    RevenueSummary,
    RevenueUnit,
    RevenueUnitsResponse,
    UnitRevenueRequest,
)
from portal.services.labour import LabourCalculator
from portal.services.payroll import PayrollCalculator
from portal.services.planday.client import PlandayClient
from portal.services.planday.enrichment import ENRICHMENT_FAILURES, fetch_employee_groups, fetch_shift_types
from portal.services.planday.normalize import parse_day, pick_first, to_int
from portal.services.revenue_aggregator import RevenueAggregator
from portal.services.shift_aggregator import ShiftAggregator

router = APIRouter(prefix="/api/planday", tags=["Planday"])
logger = logging.getLogger("staff-portal.planday")

MAX_LABOUR_RANGE_DAYS = 31


def _named_items(lists, default_name: str) -> list[NamedItem]:
    by_id: dict[int, NamedItem] = {}
    for item in (x for lst in lists for x in lst if isinstance(x, dict)):
        item_id = to_int(pick_first(item, "id", "ID"))
        if item_id is None:
            continue
        by_id[item_id] = NamedItem(id=item_id, name=str(pick_first(item, "name", "Name") or default_name))
    return list(by_id.values())


def _anchor_day(req: RevenueRequest, config: PlandayConfig) -> date:
    """``date``, then ``anchorYmd``, then today in the reporting timezone. Raises ValueError."""
    raw_day = req.date or req.anchor_ymd
    if raw_day:
        return parse_day(raw_day)
    return datetime.now(ZoneInfo(config.timezone)).date()


# ─── Aggregations ────────────────────────────────────────────────────────────

@router.post("/day", response_model=DayResponse)
async def day_shifts(
    req: DayRequest,
    shifts: ShiftAggregator = Depends(get_shift_aggregator),
):
    """
    All shifts for ``departmentIds`` on ``date``.

    ``status`` may be a string or a list; by default published and open
    shifts are both returned. Items are unique by shift id and sorted by
    start time.
    """
    if not req.department_ids or not req.date:
        return error_response(400, "departmentIds[] and date are required")
    try:
        day = parse_day(req.date)
    except ValueError:
        return error_response(400, "date must be YYYY-MM-DD")

    items = await shifts.day(req.department_ids, day, req.status)
    return DayResponse(items=items)


@router.post("/revenue", response_model=RevenueSummary)
async def week_revenue(
    req: RevenueRequest,
    revenue: RevenueAggregator = Depends(get_revenue_aggregator),
    config: PlandayConfig = Depends(get_config),
):
    """Actual vs budgeted revenue for the Monday-Sunday week containing ``date`` (today by default)."""
    if not req.department_ids:
        return error_response(400, "departmentIds required")
    try:
        anchor = _anchor_day(req, config)
    except ValueError:
        return error_response(400, "date must be YYYY-MM-DD")

    return await revenue.week(req.department_ids, anchor)


@router.post("/labour", response_model=LabourResponse)
async def scheduled_labour(
    req: LabourRequest,
    labour: LabourCalculator = Depends(get_labour_calculator),
):
    """Scheduled wage cost (hours x hourly rate) for every day from ``start`` to ``end``."""
    if not req.department_ids:
        return error_response(400, "departmentIds required")
    if not req.start or not req.end:
        return error_response(400, "start and end required (ISO)")
    try:
        start, end = parse_day(req.start), parse_day(req.end)
    except ValueError:
        return error_response(400, "start and end must be ISO dates")
    if end < start:
        return error_response(400, "end must not be before start")
    if (end - start).days >= MAX_LABOUR_RANGE_DAYS:
        return error_response(400, f"range is limited to {MAX_LABOUR_RANGE_DAYS} days")

    return await labour.scheduled_cost(req.department_ids, start, end)


@router.post("/payroll", response_model=PayrollResponse)
async def weekly_payroll(
    req: PayrollRequest,
    payroll: PayrollCalculator = Depends(get_payroll_calculator),
    config: PlandayConfig = Depends(get_config),
):
    """
    Scheduled wages against sales for the week containing ``date``, as a
    percentage of sales and as a variance from the configured target.
    """
    if not req.department_ids:
        return error_response(400, "departmentIds required")
    try:
        anchor = _anchor_day(req, config)
    except ValueError:
        return error_response(400, "date must be YYYY-MM-DD")

    return await payroll.week(req.department_ids, anchor)


# ─── Reference data ──────────────────────────────────────────────────────────

@router.get("/departments", response_model=DepartmentsResponse)
async def list_departments(client: PlandayClient = Depends(get_planday_client)):
    items: list = []
    offset = 0
    for _ in range(DEPARTMENT_MAX_PAGES):
        page = await client.list_departments(offset)
        if not page:
            break
        items.extend(page)
        offset += len(page)
        if len(page) < DEPARTMENT_PAGE_SIZE:
            break

    departments = []
    for d in items:
        if not isinstance(d, dict):
            continue
        dept_id = to_int(pick_first(d, "id", "ID"))
        if dept_id is None:
            continue
        is_active = pick_first(d, "isActive", "IsActive")
        departments.append(Department(
            id=dept_id,
            name=str(pick_first(d, "name", "Name") or "Dept"),
            parent_id=to_int(pick_first(d, "parentId", "ParentId")),
            is_active=True if is_active is None else bool(is_active),
        ))
    return DepartmentsResponse(count=len(departments), items=departments)


@router.get("/shifts")
async def raw_shifts(
    department_id: Optional[str] = Query(None, alias="departmentId"),
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    status: Optional[str] = None,
    section_id: Optional[str] = Query(None, alias="sectionId"),
    position_id: Optional[str] = Query(None, alias="positionId"),
    client: PlandayClient = Depends(get_planday_client),
):
    """Pass-through of the Planday shift listing for one department."""
    if not department_id:
        return error_response(400, "Missing departmentId")
    return await client.get_shifts_raw({
        "departmentId": department_id,
        "from": date_from,
        "to": date_to,
        "status": status,
        "sectionId": section_id,
        "positionId": position_id,
    })


@router.post("/shifttypes", response_model=NamedItemsResponse)
async def list_shift_types(
    req: DepartmentIdsRequest,
    client: PlandayClient = Depends(get_planday_client),
):
    if not req.department_ids:
        return NamedItemsResponse(items=[])
    ids = list(dict.fromkeys(req.department_ids))
    lists = await asyncio.gather(*(fetch_shift_types(client, d) for d in ids))
    return NamedItemsResponse(items=_named_items(lists, "Unknown"))


@router.post("/employeegroups", response_model=NamedItemsResponse)
async def list_employee_groups(
    req: DepartmentIdsRequest,
    client: PlandayClient = Depends(get_planday_client),
):
    """Employee groups of ``departmentIds``; with none given, every group visible to the token."""
    ids = list(dict.fromkeys(req.department_ids)) or [None]
    lists = await asyncio.gather(*(fetch_employee_groups(client, d) for d in ids))
    return NamedItemsResponse(items=_named_items(lists, "Group"))


@router.post("/revenueunits", response_model=RevenueUnitsResponse)
async def list_revenue_units(
    req: DepartmentIdsRequest,
    client: PlandayClient = Depends(get_planday_client),
):
    """
    Revenue units per department. A department whose lookup fails simply
    contributes no units; with no departments given, every unit visible to
    the token is listed.
    """
    def to_unit(u: dict, dept: Optional[str]) -> Optional[RevenueUnit]:
        unit_id = to_int(pick_first(u, "id", "ID"))
        if unit_id is None:
            return None
        return RevenueUnit(
            id=unit_id,
            name=str(pick_first(u, "name", "Name") or "Unit"),
            department_id=to_int(pick_first(u, "departmentId", "DepartmentId")) or to_int(dept),
        )

    async def units_for(dept: str) -> list[RevenueUnit]:
        try:
            raw = await client.list_revenue_units(dept)
        except ENRICHMENT_FAILURES as e:
            logger.warning(f"revenue units unavailable for department {dept}: {e}")
            return []
        return [u for u in (to_unit(x, dept) for x in raw if isinstance(x, dict)) if u]

    if req.department_ids:
        lists = await asyncio.gather(*(units_for(d) for d in dict.fromkeys(req.department_ids)))
        units = [u for lst in lists for u in lst]
    else:
        raw = await client.list_revenue_units()
        units = [u for u in (to_unit(x, None) for x in raw if isinstance(x, dict)) if u]
    return RevenueUnitsResponse(count=len(units), units=units)


@router.post("/unit-revenues")
async def unit_revenues(
    req: UnitRevenueRequest,
    client: PlandayClient = Depends(get_planday_client),
):
    """Pass-through of one revenue unit's figures between ``from`` and ``to``."""
    if not req.unit_id or not req.date_from or not req.date_to:
        return error_response(400, "unitId, from, to required")
    return await client.list_unit_revenues(str(req.unit_id), req.date_from, req.date_to)


# ─── Diagnostics ─────────────────────────────────────────────────────────────

@router.get("/_debug/token", dependencies=[Depends(require_debug_routes)])
async def debug_token(client: PlandayClient = Depends(get_planday_client)):
    """Scopes and expiry of the current access token (claims decoded without verification)."""
    token = await client.tokens.get_access_token()
    try:
        payload = jwt.get_unverified_claims(token)
    except JWTError:
        payload = {}
    scopes = pick_first(payload, "scope", "scp", "Scopes", "scopes") or ""
    exp = payload.get("exp")
    exp_iso = None
    if isinstance(exp, (int, float)):
        exp_iso = datetime.fromtimestamp(exp, tz=timezone.utc).isoformat()
    return {"scopes": scopes, "exp": exp_iso, "payload": payload}
