"""
Translation of service-layer failures into the ``{"error": ...}`` payloads
the portal UI expects.

    400  bad input (validation, malformed JSON)
    403  Planday refused our credentials (after one refresh-and-retry)
    500  configuration error (missing credentials)
    502  any other upstream status, or the upstream was unreachable
"""
import logging

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from portal.services.planday.errors import ExternalApiError, PlandayAuthError, PlandayConfigError

logger = logging.getLogger("staff-portal.errors")


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def status_for_upstream(exc: Exception) -> int:
    if isinstance(exc, PlandayConfigError):
        return 500
    if isinstance(exc, PlandayAuthError):
        return 403
    if isinstance(exc, ExternalApiError):
        return 403 if exc.is_auth_failure else 502
    return 502


async def _upstream_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = status_for_upstream(exc)
    logger.warning(
        f"{request.method} {request.url.path} failed upstream: {type(exc).__name__}: {exc}",
        extra={"http_status": status_code},
    )
    return error_response(status_code, str(exc) or type(exc).__name__)


async def _validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if any(e.get("type") == "json_invalid" for e in errors):
        return error_response(400, "Invalid JSON")
    first = errors[0] if errors else {}
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request")
    return error_response(400, f"{location}: {message}" if location else message)


async def _http_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail))


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PlandayAuthError, _upstream_handler)
    app.add_exception_handler(ExternalApiError, _upstream_handler)
    app.add_exception_handler(httpx.TransportError, _upstream_handler)
    app.add_exception_handler(RequestValidationError, _validation_handler)
    app.add_exception_handler(StarletteHTTPException, _http_handler)
