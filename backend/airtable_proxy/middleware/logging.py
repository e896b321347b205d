"""
Airtable Edge Proxy — Request Logging Middleware
=================================================

What:  One access-log line per request: method, path, status, duration,
       request ID and client key.
Why:   The proxy rejects requests at several stages; the status code in the
       access log shows which stage stopped each one.
How:   Measures time around call_next and logs at a level chosen from the
       status class (5xx ERROR, 4xx WARNING, otherwise INFO).

What we log vs what we DON'T log:
    Log:       method, path, status, duration, client key, request ID
    Don't log: query strings (filter formulas may contain customer data),
               request bodies, the Authorization header
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from airtable_proxy.middleware.request_id import request_id_var
from airtable_proxy.services.request_handler import client_identity

logger = logging.getLogger("airtable_proxy.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs structured information about each HTTP request and response.

    Args:
        client_ip_header: Trusted header used to identify the client, the
                          same one the rate limiter keys on
    """

    # Health probes run every few seconds; logging them drowns real traffic
    SKIPPED_PATHS = {"/health"}

    def __init__(self, app, client_ip_header: str = "CF-Connecting-IP", **kwargs):
        super().__init__(app, **kwargs)
        self.client_ip_header = client_ip_header

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in self.SKIPPED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        method = request.method
        client = client_identity(request.headers, self.client_ip_header)
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            client,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client": client,
            },
        )

        return response
