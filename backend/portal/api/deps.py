"""FastAPI dependency injection: Planday client and aggregators owned by the app."""
from fastapi import Depends, HTTPException, Request

from portal.config import PlandayConfig
from portal.services.labour import LabourCalculator, LabourRates
from portal.services.payroll import PayrollCalculator, PayrollTargets
from portal.services.planday.client import PlandayClient
from portal.services.response_cache import ResponseCache
from portal.services.revenue_aggregator import RevenueAggregator
from portal.services.shift_aggregator import ShiftAggregator


def get_config(request: Request) -> PlandayConfig:
    return request.app.state.planday_config


def get_planday_client(request: Request) -> PlandayClient:
    client = getattr(request.app.state, "planday", None)
    if client is None:
        raise HTTPException(status_code=503, detail="Planday client not initialised")
    return client


def get_revenue_cache(request: Request) -> ResponseCache:
    return request.app.state.revenue_cache


def get_shift_aggregator(client: PlandayClient = Depends(get_planday_client)) -> ShiftAggregator:
    return ShiftAggregator(client)


def get_revenue_aggregator(
    client: PlandayClient = Depends(get_planday_client),
    cache: ResponseCache = Depends(get_revenue_cache),
    config: PlandayConfig = Depends(get_config),
) -> RevenueAggregator:
    return RevenueAggregator(client, cache, config.timezone)


def get_labour_calculator(
    shifts: ShiftAggregator = Depends(get_shift_aggregator),
    config: PlandayConfig = Depends(get_config),
) -> LabourCalculator:
    rates = LabourRates(default=config.labour_rate_default, by_department=dict(config.labour_rate_overrides))
    return LabourCalculator(shifts, rates, config.timezone)


def get_payroll_calculator(
    labour: LabourCalculator = Depends(get_labour_calculator),
    revenue: RevenueAggregator = Depends(get_revenue_aggregator),
    config: PlandayConfig = Depends(get_config),
) -> PayrollCalculator:
    targets = PayrollTargets(default=config.payroll_target_pct, by_department=dict(config.payroll_target_overrides))
    return PayrollCalculator(labour, revenue, targets)


def require_debug_routes(config: PlandayConfig = Depends(get_config)) -> None:
    """Debug endpoints answer 404 unless PORTAL_DEBUG_ROUTES is enabled."""
    if not config.debug_routes:
        raise HTTPException(status_code=404, detail="Not Found")
