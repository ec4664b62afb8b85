"""
Pydantic request/response contracts for the Planday routes.

Field names are snake_case in Python and camelCase on the wire, matching what
the portal UI already sends and reads.
"""
from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


def _coerce_ids(value):
    if value is None:
        return []
    if not isinstance(value, list):
        value = [value]
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


# ── Requests ──────────────────────────────────────────────────────────────────

class DepartmentIdsRequest(_Wire):
    department_ids: List[str] = Field(default_factory=list, alias="departmentIds")

    @field_validator("department_ids", mode="before")
    @classmethod
    def _ids(cls, v):
        return _coerce_ids(v)


class DayRequest(DepartmentIdsRequest):
    date: Optional[str] = None                                  # "YYYY-MM-DD"
    status: Optional[Union[str, List[str]]] = None              # default: Published + Open


class RevenueRequest(DepartmentIdsRequest):
    date: Optional[str] = None                                  # any day in the target week
    anchor_ymd: Optional[str] = Field(None, alias="anchorYmd")  # older UI builds send this


class PayrollRequest(RevenueRequest):
    pass


class LabourRequest(DepartmentIdsRequest):
    start: Optional[str] = None                                 # ISO, date part is used
    end: Optional[str] = None


class UnitRevenueRequest(_Wire):
    unit_id: Optional[Union[str, int]] = Field(None, alias="unitId")
    date_from: Optional[str] = Field(None, alias="from")
    date_to: Optional[str] = Field(None, alias="to")


# ── Responses ─────────────────────────────────────────────────────────────────

class ShiftRecord(_Wire):
    id: str
    name: str
    employee_id: Optional[str] = Field(None, alias="employeeId")
    start_iso: Optional[str] = Field(None, alias="startISO")
    end_iso: Optional[str] = Field(None, alias="endISO")
    department_id: Optional[str] = Field(None, alias="departmentId")
    status: Optional[str] = None
    shift_type_id: Optional[int] = Field(None, alias="shiftTypeId")
    shift_type_name: Optional[str] = Field(None, alias="shiftTypeName")
    employee_group_id: Optional[int] = Field(None, alias="employeeGroupId")
    employee_group_name: Optional[str] = Field(None, alias="employeeGroupName")


class DayResponse(_Wire):
    items: List[ShiftRecord]


class NamedItem(_Wire):
    id: int
    name: str


class NamedItemsResponse(_Wire):
    items: List[NamedItem]


class Department(_Wire):
    id: int
    name: str
    parent_id: Optional[int] = Field(None, alias="parentId")
    is_active: bool = Field(True, alias="isActive")


class DepartmentsResponse(_Wire):
    count: int
    items: List[Department]


class RevenueUnit(_Wire):
    id: int
    name: str
    department_id: Optional[int] = Field(None, alias="departmentId")


class RevenueUnitsResponse(_Wire):
    count: int
    units: List[RevenueUnit]


class RevenueDay(_Wire):
    date: str
    actual: float = 0.0
    budget: float = 0.0


class RevenueScope(_Wire):
    department_ids: List[str] = Field(alias="departmentIds")
    anchor_ymd: str = Field(alias="anchorYmd")
    week_start: str = Field(alias="weekStart")
    week_end: str = Field(alias="weekEnd")
    timezone: str


class RevenueSummary(_Wire):
    scope: RevenueScope
    days: List[RevenueDay]
    today_actual: float = Field(alias="todayActual")
    week_actual: float = Field(alias="weekActual")
    week_actual_to_date: float = Field(alias="weekActualToDate")
    week_budget: float = Field(alias="weekBudget")
    week_budget_to_date: float = Field(alias="weekBudgetToDate")
    cached: bool = False


class LabourResponse(_Wire):
    week_labour_scheduled: float = Field(alias="weekLabourScheduled")
    days_counted: int = Field(0, alias="daysCounted")
    days_failed: List[str] = Field(default_factory=list, alias="daysFailed")


class PayrollTotals(_Wire):
    wages_to_date_gbp: float = Field(alias="wagesToDateGBP")          # Monday up to the day before the anchor
    wages_week_gbp: float = Field(alias="wagesWeekGBP")               # Monday to Sunday
    sales_actual: float = Field(alias="salesActual")                  # same window as wagesToDateGBP
    sales_forecast: float = Field(alias="salesForecast")              # budgeted revenue for the week
    payroll_pct_actual: Optional[float] = Field(None, alias="payrollPctActual")
    payroll_pct_forecast: Optional[float] = Field(None, alias="payrollPctForecast")
    target_pct: Optional[float] = Field(None, alias="targetPct")
    variance_pct: Optional[float] = Field(None, alias="variancePct")
    variance_gbp: Optional[float] = Field(None, alias="varianceGBP")


class PayrollResponse(_Wire):
    scope: RevenueScope
    totals: PayrollTotals
    target_source: str = Field("none", alias="targetSource")          # "department" | "default" | "none"
    days_failed: List[str] = Field(default_factory=list, alias="daysFailed")
