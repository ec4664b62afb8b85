"""
Staff Portal API
FastAPI backend for the internal staff portal: Planday shift, revenue and
labour aggregation for the dashboard, with OAuth token caching and
resilient upstream calls.
"""
import os
import time
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from portal.api.errors import install_error_handlers
from portal.api.planday_routes import router as planday_router
from portal.config import PlandayConfig
from portal.services.logging_config import setup_logging
from portal.services.middleware import (
    RateLimitMiddleware,
    RequestTimingMiddleware,
    SecurityHeadersMiddleware,
)
from portal.services.perf_monitor import tracker as upstream_tracker
from portal.services.planday.client import PlandayClient
from portal.services.response_cache import ResponseCache

# Load .env file automatically in dev (no-op if python-dotenv not installed or file missing)
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

logger = logging.getLogger("staff-portal")

VERSION = "1.4.0"

# Record process start time for uptime calculation
_PROCESS_START = time.monotonic()


def _cors_origins() -> list[str]:
    default = "http://localhost:3000,http://localhost:8000"
    return [o.strip() for o in os.getenv("CORS_ORIGINS", default).split(",") if o.strip()]


def create_app(
    config: Optional[PlandayConfig] = None,
    client: Optional[PlandayClient] = None,
) -> FastAPI:
    """
    Build the application.

    ``config`` defaults to the environment; ``client`` lets tests inject a
    PlandayClient wired to a mock transport. An injected client is not
    closed on shutdown.
    """
    config = config or PlandayConfig.from_env()

    if not config.has_credentials:
        logger.warning("MISSING env var: PLANDAY_CLIENT_ID / PLANDAY_REFRESH_TOKEN; Planday routes will fail")
    if not config.client_secret:
        logger.info("Optional env var not set: PLANDAY_CLIENT_SECRET")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = client is None
        app.state.planday = client or PlandayClient(config)
        logger.info(f"Planday client ready (api_base={config.api_base})")
        yield
        if owned:
            await app.state.planday.aclose()

    app = FastAPI(
        title="Staff Portal API",
        version=VERSION,
        description="Planday integration for the staff dashboard",
        lifespan=lifespan,
    )
    app.state.planday_config = config
    app.state.revenue_cache = ResponseCache(ttl=config.revenue_cache_ttl_s)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With", "X-Request-ID"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RateLimitMiddleware, limit=int(os.getenv("RATE_LIMIT_PER_MINUTE", "120")))
    # Request timing + X-Request-ID must be outermost so it wraps all other middleware
    app.add_middleware(RequestTimingMiddleware)

    install_error_handlers(app)
    app.include_router(planday_router)

    @app.get("/health")
    async def health_check():
        return {
            "status": "active",
            "version": VERSION,
            "planday_configured": config.has_credentials,
            "planday_api_base": config.api_base,
        }

    @app.get("/metrics")
    async def metrics():
        """
        Upstream metrics: Planday call counts, retries, token refreshes,
        errors by path and revenue-cache effectiveness. Sourced entirely from
        the in-process UpstreamTracker singleton.
        """
        return {
            "uptime_seconds": round(time.monotonic() - _PROCESS_START, 1),
            **upstream_tracker.get_metrics(),
        }

    return app


setup_logging(
    level=os.getenv("LOG_LEVEL", "INFO"),
    json_output=os.getenv("LOG_FORMAT", "json").lower() != "text",
)
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("portal.main:app", host="0.0.0.0", port=8000, reload=True)
