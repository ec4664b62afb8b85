"""
Weekly payroll position: scheduled wages against sales and a target.

Wages come from the labour calculator, sales from the weekly revenue summary.
Both "to date" figures stop before the anchor day so the actual percentage
compares like with like. Targets are configured per department with an
optional site-wide default.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from portal.models.planday_models import PayrollResponse, PayrollTotals
from portal.services.labour import LabourCalculator
from portal.services.perf_monitor import timed_async
from portal.services.revenue_aggregator import RevenueAggregator, week_bounds

logger = logging.getLogger("staff-portal.payroll")


@dataclass(frozen=True)
class PayrollTargets:
    default: Optional[float] = None
    by_department: dict[str, float] = field(default_factory=dict)

    def resolve(self, department_ids: Iterable[str]) -> tuple[Optional[float], str]:
        """
        Target percentage and where it came from.

        A department target applies only when every configured department in
        the request agrees on it; otherwise the default (if any) is used.
        """
        configured = {self.by_department[d] for d in department_ids if d in self.by_department}
        if len(configured) == 1:
            return configured.pop(), "department"
        if self.default is not None:
            return self.default, "default"
        return None, "none"


def payroll_pct(wages: float, sales: float) -> Optional[float]:
    if sales <= 0:
        return None
    return round(wages / sales * 100, 2)


class PayrollCalculator:
    def __init__(self, labour: LabourCalculator, revenue: RevenueAggregator, targets: PayrollTargets):
        self.labour = labour
        self.revenue = revenue
        self.targets = targets

    @timed_async
    async def week(self, department_ids: list[str], anchor: date) -> PayrollResponse:
        department_ids = list(dict.fromkeys(department_ids))
        monday, sunday = week_bounds(anchor)
        (costs, failed), summary = await asyncio.gather(
            self.labour.daily_costs(department_ids, monday, sunday),
            self.revenue.week(department_ids, anchor),
        )
        if failed:
            logger.warning(f"payroll: wages exclude {len(failed)} day(s) without shift data")

        cutoff = anchor.isoformat()
        wages_week = round(sum(costs.values()), 2)
        wages_to_date = round(sum(v for day, v in costs.items() if day < cutoff), 2)
        sales_actual = summary.week_actual_to_date

        pct_actual = payroll_pct(wages_to_date, sales_actual)
        target, source = self.targets.resolve(department_ids)
        variance_pct = None
        variance_gbp = None
        if pct_actual is not None and target is not None:
            variance_pct = round(pct_actual - target, 2)
            variance_gbp = round(variance_pct / 100 * sales_actual, 2)

        return PayrollResponse(
            scope=summary.scope,
            totals=PayrollTotals(
                wages_to_date_gbp=wages_to_date,
                wages_week_gbp=wages_week,
                sales_actual=sales_actual,
                sales_forecast=summary.week_budget,
                payroll_pct_actual=pct_actual,
                payroll_pct_forecast=payroll_pct(wages_week, summary.week_budget),
                target_pct=target,
                variance_pct=variance_pct,
                variance_gbp=variance_gbp,
            ),
            target_source=source,
            days_failed=failed,
        )
