"""
Airtable Edge Proxy — Custom Exception Hierarchy
=================================================

What:  Defines the proxy's error taxonomy, one class per rejection reason.
Why:   Each admission step can stop a request. Raising a typed exception keeps
       the pipeline linear and lets a single global handler produce the
       uniform JSON error shape with CORS and rate-limit headers attached.
How:   Each exception class carries a message, an optional context dict, an
       HTTP status code and a machine-readable error code. The handler
       registered in main.py serializes them.
Who:   Raised by services (policies, upstream proxy, request handler).
When:  During request processing; never propagated to the client raw.

Exception Hierarchy:
    AirtableProxyError (base)
    ├── ConfigurationError        → 500 (secret token missing)
    ├── RateLimitExceededError    → 429 (includes reset time)
    ├── OriginNotAllowedError     → 403 (non-GET from unknown origin)
    ├── ResourceNotAllowedError   → 400 or 403 (depends on route form)
    ├── MalformedBodyError        → 400 (JSON parse failure)
    └── UpstreamUnavailableError  → 502 (transport failure talking to Airtable)

Response shape:
    {"error": <message>, "code": <error_code>, "request_id": <id>, ...public context}

Only keys listed in `public_context` are copied into the response body;
everything else in `context` is for server-side logs.
"""

from typing import Any, Dict, Optional, Tuple


class AirtableProxyError(Exception):
    """
    Base exception for all proxy errors.

    Attributes:
        message:  Client-facing error description (safe to return)
        context:  Additional debug info (logged; only public keys returned)
    """

    status_code: int = 500
    error_code: str = "internal_error"
    public_context: Tuple[str, ...] = ()

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.context = context or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        """Body of the JSON error response (without request_id)."""
        payload: Dict[str, Any] = {"error": self.message, "code": self.error_code}
        for key in self.public_context:
            if key in self.context:
                payload[key] = self.context[key]
        return payload


class ConfigurationError(AirtableProxyError):
    """
    Raised when the upstream token is not configured.

    HTTP: 500. Checked before any client data is read, so a misconfigured
    deployment fails closed instead of calling Airtable anonymously.
    """

    status_code = 500
    error_code = "configuration_error"

    def __init__(
        self,
        message: str = "Server configuration error",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(AirtableProxyError):
    """
    Raised when a client exceeds its fixed-window request budget.

    HTTP: 429. The response carries `resetAt` (epoch ms) in the body and
    X-RateLimit-Reset / Retry-After headers.
    """

    status_code = 429
    error_code = "rate_limit_exceeded"
    public_context = ("resetAt",)

    def __init__(
        self,
        reset_at: int,
        retry_after: int,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["resetAt"] = reset_at
        ctx["retry_after"] = retry_after
        super().__init__(message="Rate limit exceeded", context=ctx)
        self.reset_at = reset_at
        self.retry_after = retry_after


class OriginNotAllowedError(AirtableProxyError):
    """Raised for a mutating request from an origin outside the allow-list."""

    status_code = 403
    error_code = "origin_not_allowed"

    def __init__(
        self,
        origin: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["origin"] = origin
        super().__init__(message="Origin not allowed", context=ctx)


class ResourceNotAllowedError(AirtableProxyError):
    """
    Raised when the requested base/table path fails the allow-list.

    HTTP: 403 for the path-segment route, 400 for the ?path= route. The
    message is always the policy's specific reason ("Base not allowed",
    "Table not allowed", "Invalid path format", "Missing path parameter").
    """

    status_code = 403
    error_code = "resource_not_allowed"

    def __init__(
        self,
        reason: str,
        status_code: int = 403,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=reason, context=context, status_code=status_code)


class MalformedBodyError(AirtableProxyError):
    """Raised when a POST/PATCH/PUT body is not valid JSON."""

    status_code = 400
    error_code = "malformed_body"

    def __init__(
        self,
        message: str = "Invalid JSON body",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class UpstreamUnavailableError(AirtableProxyError):
    """
    Raised when the call to Airtable fails at the transport level.

    HTTP: 502. `details` is a short description of the failure class
    (e.g. "Upstream request timed out"); raw exception text stays in logs.
    """

    status_code = 502
    error_code = "upstream_unavailable"
    public_context = ("details",)

    def __init__(
        self,
        details: str = "Upstream request failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["details"] = details
        super().__init__(message="Failed to fetch from Airtable", context=ctx)
