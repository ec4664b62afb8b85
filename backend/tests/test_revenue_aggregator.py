"""
test_revenue_aggregator.py — Weekly actual vs budget reconciliation.

Tests cover:
  - week_bounds: Monday..Sunday containing the anchor
  - bucket_by_day: heterogeneous date/value fields, timezone bucketing, drops
  - reconcile: per-day rows and week / to-date totals
  - RevenueAggregator.week: concurrent streams, cache hits, failure propagation
"""

import asyncio
from datetime import date

import httpx
import pytest

from portal.services.perf_monitor import tracker
from portal.services.planday.client import REVENUE_BUDGETS_PATH, REVENUE_PATH
from portal.services.planday.errors import ExternalApiError
from portal.services.response_cache import ResponseCache
from portal.services.revenue_aggregator import (
    ACTUAL_VALUE_KEYS,
    BUDGET_VALUE_KEYS,
    RevenueAggregator,
    bucket_by_day,
    reconcile,
    week_bounds,
)

TZ = "Europe/London"


# ===========================================================================
# Class 1: Pure helpers
# ===========================================================================

class TestWeekBounds:

    @pytest.mark.parametrize("anchor", [date(2025, 1, 6), date(2025, 1, 9), date(2025, 1, 12)])
    def test_monday_to_sunday(self, anchor):
        assert week_bounds(anchor) == (date(2025, 1, 6), date(2025, 1, 12))


class TestBucketByDay:

    def test_mixed_date_and_value_fields(self):
        rows = [
            {"date": "2025-01-06", "value": 100},
            {"BusinessDate": "2025-01-06T00:00:00", "Amount": "50.5"},
            {"revenueDate": "2025-01-07", "turnover": 20},
        ]
        assert bucket_by_day(rows, ACTUAL_VALUE_KEYS, TZ) == {"2025-01-06": 150.5, "2025-01-07": 20.0}

    def test_utc_timestamp_bucketed_in_reporting_zone(self):
        rows = [{"timestamp": "2025-07-06T23:30:00Z", "value": 10}]
        assert bucket_by_day(rows, ACTUAL_VALUE_KEYS, TZ) == {"2025-07-07": 10.0}

    def test_rows_without_date_or_value_dropped(self):
        rows = [
            {"value": 10},
            {"date": "2025-01-06"},
            {"date": "not a date", "value": 3},
            "garbage",
            {"date": "2025-01-06", "value": 1},
        ]
        assert bucket_by_day(rows, ACTUAL_VALUE_KEYS, TZ) == {"2025-01-06": 1.0}

    def test_budget_field_preferred_for_budgets(self):
        rows = [{"date": "2025-01-06", "budget": 120, "value": 999}]
        assert bucket_by_day(rows, BUDGET_VALUE_KEYS, TZ) == {"2025-01-06": 120.0}


class TestReconcile:

    def test_totals_match_by_date(self):
        summary = reconcile({"2025-01-06": 100.0}, {"2025-01-06": 120.0}, ["1"], date(2025, 1, 6), TZ)

        assert summary.week_actual == 100
        assert summary.week_budget == 120
        assert summary.today_actual == 100
        assert [d.date for d in summary.days][0] == "2025-01-06"
        assert len(summary.days) == 7
        assert summary.scope.week_end == "2025-01-12"

    def test_to_date_excludes_anchor_day(self):
        actual = {"2025-01-06": 10.0, "2025-01-07": 20.0, "2025-01-08": 40.0}
        budget = {"2025-01-06": 15.0, "2025-01-07": 15.0, "2025-01-08": 15.0}

        summary = reconcile(actual, budget, ["1"], date(2025, 1, 8), TZ)

        assert summary.week_actual_to_date == 30
        assert summary.week_budget_to_date == 30
        assert summary.today_actual == 40
        assert summary.week_actual == 70

    def test_monday_anchor_has_empty_to_date(self):
        summary = reconcile({"2025-01-06": 10.0}, {"2025-01-06": 5.0}, ["1"], date(2025, 1, 6), TZ)
        assert summary.week_actual_to_date == 0
        assert summary.week_budget_to_date == 0

    def test_days_outside_week_ignored(self):
        summary = reconcile({"2025-01-05": 99.0, "2025-01-13": 99.0}, {}, ["1"], date(2025, 1, 8), TZ)
        assert summary.week_actual == 0

    def test_wire_format(self):
        wire = reconcile({}, {}, ["1"], date(2025, 1, 8), TZ).model_dump(by_alias=True)
        assert {"todayActual", "weekActual", "weekActualToDate", "weekBudget", "weekBudgetToDate"} <= set(wire)
        assert wire["scope"]["weekStart"] == "2025-01-06"


# ===========================================================================
# Class 2: Aggregator
# ===========================================================================

@pytest.fixture
def revenue(planday_client):
    return RevenueAggregator(planday_client, ResponseCache(ttl=120), TZ)


class TestRevenueAggregator:

    def test_week_example(self, revenue, fake_planday):
        fake_planday.on(REVENUE_PATH, httpx.Response(200, json=[{"date": "2025-01-06", "value": 100}]))
        fake_planday.on(REVENUE_BUDGETS_PATH, httpx.Response(200, json={"data": [{"date": "2025-01-06", "budget": 120}]}))

        summary = asyncio.run(revenue.week(["1"], date(2025, 1, 6)))

        assert summary.week_actual == 100
        assert summary.week_budget == 120
        assert summary.cached is False
        params = fake_planday.calls_to(REVENUE_PATH)[0].url.params
        assert (params["departmentId"], params["from"], params["to"]) == ("1", "2025-01-06", "2025-01-12")

    def test_departments_summed(self, revenue, fake_planday):
        def actuals(request):
            value = {"1": 10, "2": 5}[request.url.params["departmentId"]]
            return httpx.Response(200, json=[{"date": "2025-01-07", "value": value}])

        fake_planday.on(REVENUE_PATH, actuals)
        fake_planday.on(REVENUE_BUDGETS_PATH, httpx.Response(200, json=[]))

        summary = asyncio.run(revenue.week(["1", "2"], date(2025, 1, 8)))

        assert summary.week_actual == 15
        assert summary.week_actual_to_date == 15
        assert summary.scope.department_ids == ["1", "2"]

    def test_second_call_served_from_cache(self, revenue, fake_planday):
        fake_planday.on(REVENUE_PATH, httpx.Response(200, json=[{"date": "2025-01-06", "value": 1}]))
        fake_planday.on(REVENUE_BUDGETS_PATH, httpx.Response(200, json=[]))

        async def run():
            first = await revenue.week(["2", "1"], date(2025, 1, 6))
            second = await revenue.week(["1", "2"], date(2025, 1, 6))
            return first, second

        first, second = asyncio.run(run())

        assert first.cached is False
        assert second.cached is True
        assert second.week_actual == first.week_actual
        assert len(fake_planday.calls_to(REVENUE_PATH)) == 2   # one per department, once
        metrics = tracker.get_metrics()
        assert (metrics["cache_hits"], metrics["cache_misses"]) == (1, 1)

    def test_budget_failure_propagates_and_is_not_cached(self, revenue, fake_planday):
        fake_planday.on(REVENUE_PATH, httpx.Response(200, json=[]))
        fake_planday.on(REVENUE_BUDGETS_PATH, httpx.Response(500, text="boom"))

        with pytest.raises(ExternalApiError):
            asyncio.run(revenue.week(["1"], date(2025, 1, 6)))

        assert revenue.cache.get(ResponseCache.make_key(["1"], "2025-01-06")) is None
