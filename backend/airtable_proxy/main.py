"""
Airtable Edge Proxy — FastAPI Application Factory
==================================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes component wiring, middleware registration, exception
       handling and route mounting in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn (uvicorn airtable_proxy.main:app) and by tests.

Application Architecture:
    ┌──────────────────────────────────────────────────────┐
    │                   FastAPI App                        │
    │                                                      │
    │  Middleware Chain:                                   │
    │  ┌──────────┐ ┌─────────────┐                        │
    │  │  Req ID  │→│  Logging    │                        │
    │  └──────────┘ └─────────────┘                        │
    │                                                      │
    │  Routes:                                             │
    │  ┌──────────────────────┐ ┌─────────────┐            │
    │  │ * /api/airtable/...  │ │ GET /health │            │
    │  └──────────────────────┘ └─────────────┘            │
    │                                                      │
    │  app.state:                                          │
    │  RateLimiter · CorsPolicy · AccessPolicy x2 ·        │
    │  UpstreamProxy (httpx) · RequestHandler              │
    │                                                      │
    │  Exception Handlers:                                 │
    │  AirtableProxyError → its status │ Exception → 500   │
    └──────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  configure logging, report configuration problems
    Shutdown: close the shared httpx client
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from airtable_proxy import __version__
from airtable_proxy.config import Settings, settings as default_settings
from airtable_proxy.exceptions import AirtableProxyError
from airtable_proxy.middleware.logging import RequestLoggingMiddleware
from airtable_proxy.middleware.request_id import RequestIDMiddleware, request_id_var
from airtable_proxy.routes import health, proxy
from airtable_proxy.services.access_policy import AccessPolicy, PathForm
from airtable_proxy.services.cors_policy import CorsMode, CorsPolicy
from airtable_proxy.services.rate_limiter import RateLimiter
from airtable_proxy.services.request_handler import RequestHandler
from airtable_proxy.services.upstream_proxy import (
    BodyForwarding,
    QueryForwarding,
    UpstreamProxy,
)

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s

    Called once during app startup. The Airtable token never appears in log
    records: headers are not logged and upstream errors are logged by type.
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # httpx logs every request URL at INFO, query strings included
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config: Settings = app.state.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(config.log_level)
    logger.info("Airtable Edge Proxy %s starting up...", __version__)

    try:
        config.validate_required_for_production()
    except ValueError as e:
        # Not fatal: the proxy still answers (with 500s) and /health reports it
        logger.error("Configuration error: %s", str(e))

    logger.info(
        "Allow-list: %d base(s), %d table(s); CORS %s with %d origin(s)",
        len(config.allowed_bases_set),
        len(config.allowed_tables_set),
        config.cors_mode,
        len(config.cors_origins_list),
    )
    logger.info(
        "Rate limit: %d requests per %dms per client",
        config.rate_limit_requests,
        config.rate_limit_window_ms,
    )

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Airtable Edge Proxy shutting down...")
    await app.state.request_handler.upstream.aclose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _response_headers(request: Request) -> dict:
    """CORS (and, once admitted, rate-limit) headers recorded by the pipeline."""
    return dict(getattr(request.state, "proxy_headers", None) or {})


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register global exception handlers for consistent error responses.

    Handler hierarchy:
        AirtableProxyError   → exc.status_code, {"error", "code", "request_id", ...}
        Exception (fallback) → 500, generic message

    Both attach the CORS headers computed for the request, so the browser
    can read the error instead of reporting an opaque CORS failure.
    """

    @app.exception_handler(AirtableProxyError)
    async def handle_proxy_error(request: Request, exc: AirtableProxyError):
        rid = request_id_var.get("")
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, exc.error_code, exc.message, exc.context)
        else:
            logger.warning("[%s] %s: %s", rid, exc.error_code, exc.message)

        content = exc.to_payload()
        content["request_id"] = rid
        return JSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=_response_headers(request),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Stack trace is logged server-side only, never returned."""
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "An unexpected error occurred",
                "code": "internal_error",
                "request_id": rid,
            },
            headers=_response_headers(request),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def build_request_handler(
    config: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Optional[Callable[[], float]] = None,
) -> RequestHandler:
    """Assemble the admission pipeline from settings."""
    rate_limiter = RateLimiter(
        limit=config.rate_limit_requests,
        window_ms=config.rate_limit_window_ms,
        clock=clock,
    )
    cors_policy = CorsPolicy(
        allowed_origins=config.cors_origins_list,
        mode=CorsMode(config.cors_mode),
        default_origin=config.cors_default_origin or None,
    )
    segment_policy = AccessPolicy(
        config.allowed_bases_set, config.allowed_tables_set, form=PathForm.SEGMENTS
    )
    embedded_policy = AccessPolicy(
        config.allowed_bases_set, config.allowed_tables_set, form=PathForm.EMBEDDED
    )
    upstream = UpstreamProxy(
        token=config.airtable_token,
        api_url=config.airtable_api_url,
        timeout=config.upstream_timeout_seconds,
        query_forwarding=QueryForwarding(config.query_forwarding),
        body_forwarding=BodyForwarding(config.body_forwarding),
        transport=transport,
    )
    return RequestHandler(
        rate_limiter=rate_limiter,
        cors_policy=cors_policy,
        segment_policy=segment_policy,
        embedded_policy=embedded_policy,
        upstream=upstream,
        client_ip_header=config.client_ip_header,
    )


def create_app(
    config: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Optional[Callable[[], float]] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Settings to use (defaults to the environment-loaded singleton)
        transport: httpx transport for the upstream client (tests pass MockTransport)
        clock: Millisecond clock for the rate limiter (tests pass a fake clock)

    Components are built here, not at import time, so each app instance
    owns its own rate-limit state.
    """
    config = config or default_settings

    app = FastAPI(
        title="Airtable Edge Proxy",
        description=(
            "Authenticated reverse proxy in front of the Airtable REST API with "
            "resource allow-listing, per-client rate limiting and origin-restricted CORS."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.request_handler = build_request_handler(config, transport=transport, clock=clock)

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RequestID → Logging → routes
    app.add_middleware(RequestLoggingMiddleware, client_ip_header=config.client_ip_header)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(proxy.router)
    app.include_router(health.router)

    return app


# uvicorn expects `airtable_proxy.main:app` to be importable
app = create_app()
