"""
Planday API client.

Builds request paths and query strings, attaches the bearer token and
client-identifier headers, and returns parsed JSON for the resources the
portal reads: departments, shifts, shift types, employee groups, employees,
revenue units and revenue (actual and budget).
"""
import asyncio
import logging
from typing import Any, Iterable, Mapping, Optional

import httpx

from portal.config import DEFAULT_MAX_RETRIES, PlandayConfig
from portal.services.planday.errors import ExternalApiError, InvalidPayloadError
from portal.services.planday.token import TokenProvider
from portal.services.planday.transport import Sleep, fetch_with_retry

logger = logging.getLogger("staff-portal.planday.client")

DEPARTMENTS_PATH = "/schedule/v1.0/departments"
SHIFTS_PATH = "/scheduling/v1.0/shifts"
EMPLOYEES_PATH = "/hr/v1/Employees"
REVENUE_UNITS_PATH = "/revenue/v1.0/revenueunits"
REVENUE_PATH = "/revenue/v1.0/revenue"
REVENUE_BUDGETS_PATH = "/revenue/v1.0/revenuebudgets"


def as_list(payload: Any) -> list:
    """Unwrap a bare array, ``{"items": [...]}`` or ``{"data": [...]}``; anything else is empty."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping):
        for key in ("items", "data"):
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return []


class PlandayClient:
    """
    Async client for the Planday open API.

    Stateless apart from the owned TokenProvider, so one instance is shared
    by every request handler in the process.
    """

    def __init__(
        self,
        config: PlandayConfig,
        http: Optional[httpx.AsyncClient] = None,
        tokens: Optional[TokenProvider] = None,
        sleep: Sleep = asyncio.sleep,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self.config = config
        self._owns_http = http is None
        if http is None:
            if config.http_timeout_s is not None:
                http = httpx.AsyncClient(timeout=config.http_timeout_s)
            else:
                http = httpx.AsyncClient()
        self._http = http
        self.tokens = tokens or TokenProvider(config, http)
        self._sleep = sleep
        self._max_retries = max_retries

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "PlandayClient":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    # -- core ----------------------------------------------------------------

    async def call(self, path: str, query: Optional[Mapping[str, Any]] = None) -> Any:
        """
        GET ``path`` and return parsed JSON.

        Raises ExternalApiError on non-2xx and InvalidPayloadError when a 2xx
        body does not parse.
        """
        access_token = await self.tokens.get_access_token()
        headers = {
            "Authorization": f"Bearer {access_token}",
            "X-ClientId": self.config.client_id,
            "Content-Type": "application/json",
        }
        params = {k: str(v) for k, v in (query or {}).items() if v is not None and v != ""}
        res = await fetch_with_retry(
            self._http,
            "GET",
            f"{self.config.api_base}{path}",
            tokens=self.tokens,
            headers=headers,
            max_retries=self._max_retries,
            sleep=self._sleep,
            params=params or None,
        )
        if not res.is_success:
            raise ExternalApiError(res.status_code, res.text, path)
        if not res.content:
            return None
        try:
            return res.json()
        except ValueError:
            logger.warning(f"Planday {path} answered {res.status_code} with a non-JSON body")
            raise InvalidPayloadError(res.status_code, res.text, path)

    async def call_list(self, path: str, query: Optional[Mapping[str, Any]] = None) -> list:
        return as_list(await self.call(path, query))

    # -- resources -----------------------------------------------------------

    async def list_departments(self, offset: int = 0) -> list:
        return await self.call_list(DEPARTMENTS_PATH, {"offset": offset})

    async def list_shifts(self, department_id: str, params: Mapping[str, Any]) -> list:
        return await self.call_list(SHIFTS_PATH, {"departmentId": department_id, **params})

    async def get_shifts_raw(self, query: Mapping[str, Any]) -> Any:
        return await self.call(SHIFTS_PATH, query)

    async def list_shift_types(self, path: str, department_id: str) -> list:
        return await self.call_list(path, {"departmentId": department_id, "isActive": "true", "offset": 0})

    async def list_employee_groups(self, path: str, department_id: Optional[str] = None) -> list:
        return await self.call_list(path, {"departmentId": department_id, "offset": 0})

    async def get_employees(self, ids: Iterable[str]) -> list:
        return await self.call_list(EMPLOYEES_PATH, {"ids": ",".join(ids)})

    async def get_employee(self, employee_id: str) -> Any:
        return await self.call(f"{EMPLOYEES_PATH}/{employee_id}")

    async def list_revenue_units(self, department_id: Optional[str] = None) -> list:
        query = {"departmentId": department_id} if department_id is not None else None
        return await self.call_list(REVENUE_UNITS_PATH, query)

    async def list_unit_revenues(self, unit_id: str, date_from: str, date_to: str) -> Any:
        return await self.call(REVENUE_UNITS_PATH, {"unitIds": unit_id, "from": date_from, "to": date_to})

    async def list_revenue(self, department_id: str, date_from: str, date_to: str) -> list:
        return await self.call_list(REVENUE_PATH, {"departmentId": department_id, "from": date_from, "to": date_to})

    async def list_revenue_budgets(self, department_id: str, date_from: str, date_to: str) -> list:
        return await self.call_list(
            REVENUE_BUDGETS_PATH, {"departmentId": department_id, "from": date_from, "to": date_to}
        )
