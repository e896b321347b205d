"""
Airtable Edge Proxy — Health Check Route
=========================================

What:  Liveness/configuration probe for load balancers and monitoring.
Why:   A proxy without its token answers every call with 500; the probe
       surfaces that as "degraded" instead of letting it look healthy.
How:   Reports local state only. Airtable itself is not called, so the probe
       never spends upstream quota and is never rate limited.

Status levels:
    healthy:   token configured
    degraded:  token missing (HTTP 200, flag for monitoring)
"""

import time

from fastapi import APIRouter, Request

from airtable_proxy import __version__
from airtable_proxy.schemas.proxy import HealthResponse

router = APIRouter(tags=["Health"])

# Module-level: initialized once when the module loads
_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Reports whether the proxy is configured to reach Airtable.",
)
async def health_check(request: Request) -> HealthResponse:
    handler = request.app.state.request_handler
    token_configured = handler.upstream.token_configured

    return HealthResponse(
        status="healthy" if token_configured else "degraded",
        version=__version__,
        token_configured=token_configured,
        cors_mode=handler.cors_policy.mode.value,
        tracked_clients=handler.rate_limiter.tracked_clients(),
        uptime_seconds=round(time.time() - _start_time, 2),
    )
