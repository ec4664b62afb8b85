"""
Normalization of heterogeneous Planday payloads.

Planday returns the same concept under different field names and casings
depending on endpoint and API version. Everything the aggregators need is
read through the helpers below so the fallback chains live in one place.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional
from zoneinfo import ZoneInfo

from portal.models.planday_models import ShiftRecord

OPEN_SHIFT_LABEL = "Open shift"
_PLACEHOLDER_NAME = re.compile(r"^Employee\s*#\d+$", re.IGNORECASE)
_BARE_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

START_KEYS = ("startDateTime", "startUtc", "start", "startTime")
END_KEYS = ("endDateTime", "endUtc", "end", "endTime")
GROUP_ID_KEYS = (
    "employeeGroupId", "primaryEmployeeGroupId", "defaultEmployeeGroupId",
    "EmployeeGroupId", "PrimaryEmployeeGroupId", "DefaultEmployeeGroupId",
)


def pick_first(obj: Mapping[str, Any], *keys: str) -> Any:
    """First value under ``keys`` that is not None."""
    for key in keys:
        value = obj.get(key)
        if value is not None:
            return value
    return None


def pick_number(obj: Mapping[str, Any], *keys: str) -> Optional[float]:
    """First value under ``keys`` that parses as a number."""
    for key in keys:
        value = obj.get(key)
        if value is None or isinstance(value, bool):
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            continue
    return None


def to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def placeholder_name(employee_id: str) -> str:
    return f"Employee #{employee_id}"


def is_placeholder_name(name: str) -> bool:
    return bool(_PLACEHOLDER_NAME.match(name.strip()))


# ── Employees ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EmployeeDetail:
    name: Optional[str] = None
    group_id: Optional[int] = None


def employee_full_name(payload: Mapping[str, Any]) -> str:
    parts = [
        pick_first(payload, "firstName", "FirstName"),
        pick_first(payload, "lastName", "LastName"),
    ]
    return " ".join(str(p) for p in parts if p).strip()


def employee_detail_from_payload(payload: Mapping[str, Any], fallback_name: Optional[str] = None) -> EmployeeDetail:
    name = employee_full_name(payload) or fallback_name
    return EmployeeDetail(name=name or None, group_id=to_int(pick_first(payload, *GROUP_ID_KEYS)))


def resolve_employee_name(
    employee_id: Optional[str],
    payload_name: Optional[str],
    detail: Optional[EmployeeDetail],
) -> str:
    """
    Display name for a shift, in priority order:
    HR detail name, the name Planday embedded in the shift, a placeholder
    built from the id, and finally ``Open shift`` when nobody is assigned.
    Names matching the synthetic ``Employee #<id>`` pattern never win over
    a later real name.
    """
    if detail and detail.name and detail.name.strip() and not is_placeholder_name(detail.name):
        return detail.name.strip()
    if payload_name and payload_name.strip() and not is_placeholder_name(payload_name):
        return payload_name.strip()
    if employee_id:
        return placeholder_name(employee_id)
    return OPEN_SHIFT_LABEL


# ── Shifts ────────────────────────────────────────────────────────────────────

def _shift_employee_id(shift: Mapping[str, Any]) -> Optional[str]:
    raw = pick_first(shift, "employeeId", "EmployeeId")
    if raw is None or raw == "" or raw == 0:
        return None
    return str(raw)


def employee_ids_in(shifts: Iterable[Mapping[str, Any]]) -> list[str]:
    """Unique employee ids in first-seen order."""
    seen: dict[str, None] = {}
    for s in shifts:
        emp_id = _shift_employee_id(s)
        if emp_id:
            seen.setdefault(emp_id, None)
    return list(seen)


def normalize_shifts(
    shifts: Iterable[Mapping[str, Any]],
    details: Mapping[str, EmployeeDetail],
    group_by_id: Mapping[int, str],
    type_by_id: Mapping[int, str],
) -> list[ShiftRecord]:
    seen: set[str] = set()
    out: list[ShiftRecord] = []

    for s in shifts:
        shift_id = str(pick_first(s, "id", "ID") or "")
        if shift_id and shift_id in seen:
            continue
        if shift_id:
            seen.add(shift_id)

        emp_id = _shift_employee_id(s)
        detail = details.get(emp_id) if emp_id else None

        shift_type_id = to_int(pick_first(s, "shiftTypeId", "ShiftTypeId"))
        # Prefer the group on the shift, else the employee's primary group.
        group_id = to_int(pick_first(s, "employeeGroupId", "EmployeeGroupId")) or (detail.group_id if detail else None)

        out.append(ShiftRecord(
            id=shift_id,
            name=resolve_employee_name(emp_id, s.get("employeeName"), detail),
            employee_id=emp_id,
            start_iso=pick_first(s, *START_KEYS),
            end_iso=pick_first(s, *END_KEYS),
            department_id=s.get("_deptId"),
            status=pick_first(s, "status", "Status", "_status"),
            shift_type_id=shift_type_id,
            shift_type_name=type_by_id.get(shift_type_id) if shift_type_id is not None else None,
            employee_group_id=group_id or None,
            employee_group_name=group_by_id.get(group_id) if group_id else None,
        ))

    out.sort(key=lambda r: str(r.start_iso or ""))
    return out


# ── Dates ─────────────────────────────────────────────────────────────────────

def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def to_local_date_key(value: Any, tz: str) -> Optional[str]:
    """
    Calendar day (YYYY-MM-DD) of ``value`` in zone ``tz``.

    Bare dates are already business days and are kept as-is; naive
    timestamps are taken as local wall-clock time; aware timestamps are
    converted into the zone first.
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, str) and _BARE_DATE.match(value.strip()):
        return value.strip()
    ts = parse_timestamp(value)
    if ts is None:
        return None
    if ts.tzinfo is not None:
        ts = ts.astimezone(ZoneInfo(tz))
    return ts.date().isoformat()


def parse_day(value: str) -> date:
    """Parse ``YYYY-MM-DD`` (or the date part of an ISO timestamp); raises ValueError."""
    return date.fromisoformat(value.strip()[:10])
