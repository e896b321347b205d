"""
Airtable Edge Proxy — CORS Policy
==================================

What:  Computes the CORS response headers for every proxy response.
Why:   Only the dashboard's own origins may read proxied Airtable data from a
       browser. Starlette's CORSMiddleware cannot express the lenient
       fallback mode or attach headers to error responses raised inside the
       pipeline, so the policy is a plain component the handler consults.

Modes:
    strict   Allow-Origin (and Allow-Credentials) only for an exact
             allow-list match; otherwise omitted and the browser blocks the
             response.
    lenient  Allow-Origin always present: the request origin if allowed,
             otherwise the default origin. Non-GET requests from unknown
             origins are rejected separately by the handler.
"""

from enum import Enum
from typing import Dict, Iterable, Optional

ALLOW_METHODS = "GET, POST, PATCH, DELETE, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization, X-Requested-With"
MAX_AGE_SECONDS = 86400


class CorsMode(str, Enum):
    STRICT = "strict"
    LENIENT = "lenient"


class CorsPolicy:
    def __init__(
        self,
        allowed_origins: Iterable[str],
        mode: CorsMode = CorsMode.STRICT,
        default_origin: Optional[str] = None,
    ):
        # Keep list order so the first entry can serve as fallback
        self.allowed_origins = list(dict.fromkeys(allowed_origins))
        self.mode = CorsMode(mode)
        self.default_origin = default_origin or (
            self.allowed_origins[0] if self.allowed_origins else None
        )

    @property
    def enforces_write_origin(self) -> bool:
        """Lenient mode makes the handler reject non-GET calls from unknown origins."""
        return self.mode is CorsMode.LENIENT

    def is_origin_allowed(self, origin: Optional[str]) -> bool:
        return bool(origin) and origin in self.allowed_origins

    def headers(self, request_origin: Optional[str], method: str = "GET") -> Dict[str, str]:
        """
        Header set for a response to `method` from `request_origin`.

        The method does not change the header set today; it is accepted so
        preflight and actual responses go through the same call.
        """
        headers = {
            "Access-Control-Allow-Methods": ALLOW_METHODS,
            "Access-Control-Allow-Headers": ALLOW_HEADERS,
            "Access-Control-Max-Age": str(MAX_AGE_SECONDS),
        }

        allowed = self.is_origin_allowed(request_origin)
        if allowed:
            origin = request_origin
        elif self.mode is CorsMode.LENIENT:
            origin = self.default_origin
        else:
            origin = None

        if origin:
            headers["Access-Control-Allow-Origin"] = origin
            headers["Access-Control-Allow-Credentials"] = "true"
            headers["Vary"] = "Origin"
        return headers
