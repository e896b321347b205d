"""
Airtable Edge Proxy — Request Admission Pipeline
=================================================

What:  Runs every inbound proxy request through the admission steps and
       returns the final response.
Why:   The order of the checks is part of the security contract. Keeping it
       in one method makes the order visible and testable.
How:   Each step either passes or raises an AirtableProxyError. Headers that
       must appear on every response (CORS, rate limit) are accumulated on
       request.state.proxy_headers so the global exception handler can attach
       them to error responses too.

Pipeline (fixed order):
    1. OPTIONS                        → 204 with CORS headers, nothing else
    2. token missing                  → 500 ConfigurationError
    3. rate limit                     → 429 RateLimitExceededError
    4. lenient CORS, non-GET, unknown origin → 403 OriginNotAllowedError
    5. resource path allow-list       → 400/403 ResourceNotAllowedError
    6. request body (mutating calls)  → 400 MalformedBodyError
    7. forward to Airtable            → relayed status/body, or 502

A request that reaches step 7 has already been counted by the rate
limiter, whether or not Airtable answers.
"""

import logging
from typing import Dict, Iterable, Optional

from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import Response

from airtable_proxy.exceptions import (
    ConfigurationError,
    OriginNotAllowedError,
    RateLimitExceededError,
    ResourceNotAllowedError,
)
from airtable_proxy.services.access_policy import AccessPolicy, PathForm
from airtable_proxy.services.cors_policy import CorsPolicy
from airtable_proxy.services.rate_limiter import RateDecision, RateLimiter
from airtable_proxy.services.upstream_proxy import BODY_METHODS, UpstreamProxy

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"

# Status for a rejected path, per inbound form
INVALID_PATH_STATUS = {
    PathForm.SEGMENTS: 403,
    PathForm.EMBEDDED: 400,
}

# Query parameter carrying the resource path in the embedded form
EMBEDDED_PATH_PARAM = "path"


def client_identity(headers: Headers, trusted_header: str = "CF-Connecting-IP") -> str:
    """
    Rate-limit key for a request.

    Trusted edge header first, then the first X-Forwarded-For hop, then
    "unknown". The value is only a bucket key and is never validated as an IP.
    """
    trusted = (headers.get(trusted_header) or "").strip()
    if trusted:
        return trusted

    forwarded = headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    return UNKNOWN_CLIENT


def rate_limit_headers(decision: RateDecision) -> Dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
    }


class RequestHandler:
    """
    Orchestrates CorsPolicy, RateLimiter, AccessPolicy and UpstreamProxy.

    One instance per application; every collaborator is passed in, so tests
    can build a handler around fakes or a MockTransport-backed proxy.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        cors_policy: CorsPolicy,
        segment_policy: AccessPolicy,
        embedded_policy: AccessPolicy,
        upstream: UpstreamProxy,
        client_ip_header: str = "CF-Connecting-IP",
    ):
        self.rate_limiter = rate_limiter
        self.cors_policy = cors_policy
        self.segment_policy = segment_policy
        self.embedded_policy = embedded_policy
        self.upstream = upstream
        self.client_ip_header = client_ip_header

    async def handle_segments(self, request: Request, raw_path: str) -> Response:
        """`/api/airtable/{base}/{table}[/{record}]`"""
        return await self._handle(request, self.segment_policy, raw_path)

    async def handle_embedded(self, request: Request) -> Response:
        """`/api/airtable?path={base}/{table}[/{record}]`"""
        raw_path = request.query_params.get(EMBEDDED_PATH_PARAM)
        return await self._handle(
            request,
            self.embedded_policy,
            raw_path,
            exclude_query=(EMBEDDED_PATH_PARAM,),
        )

    async def _handle(
        self,
        request: Request,
        policy: AccessPolicy,
        raw_path: Optional[str],
        exclude_query: Iterable[str] = (),
    ) -> Response:
        method = request.method.upper()
        origin = request.headers.get("Origin")

        cors_headers = self.cors_policy.headers(origin, method)
        request.state.proxy_headers = dict(cors_headers)

        # ── 1. Preflight ──────────────────────────────────────────────────
        if method == "OPTIONS":
            return Response(status_code=204, headers=cors_headers)

        # ── 2. Secret configured ──────────────────────────────────────────
        if not self.upstream.token_configured:
            logger.error("AIRTABLE_TOKEN is not configured; refusing to proxy")
            raise ConfigurationError()

        # ── 3. Rate limit ─────────────────────────────────────────────────
        client_id = client_identity(request.headers, self.client_ip_header)
        decision = self.rate_limiter.admit(client_id)
        request.state.proxy_headers.update(rate_limit_headers(decision))

        if not decision.allowed:
            retry_after = decision.retry_after(self.rate_limiter.now())
            request.state.proxy_headers.update(
                {
                    "X-RateLimit-Reset": str(decision.reset_at),
                    "Retry-After": str(retry_after),
                }
            )
            raise RateLimitExceededError(
                reset_at=decision.reset_at,
                retry_after=retry_after,
                context={"client": client_id},
            )

        # ── 4. Origin check for writes (lenient mode) ─────────────────────
        if (
            self.cors_policy.enforces_write_origin
            and method != "GET"
            and not self.cors_policy.is_origin_allowed(origin)
        ):
            raise OriginNotAllowedError(origin=origin)

        # ── 5. Resource allow-list ────────────────────────────────────────
        validation = policy.validate(raw_path)
        if not validation.valid:
            raise ResourceNotAllowedError(
                reason=validation.error,
                status_code=INVALID_PATH_STATUS[policy.form],
                context={"path": raw_path},
            )
        resource = validation.resource

        # ── 6. Body ───────────────────────────────────────────────────────
        raw_body: Optional[bytes] = None
        if method in BODY_METHODS:
            raw_body = await request.body() or None
        body = self.upstream.prepare_body(method, raw_body)

        # ── 7. Forward ────────────────────────────────────────────────────
        query = self.upstream.build_query(request.url.query, exclude=exclude_query)
        result = await self.upstream.forward(resource, method, body=body, query=query)

        return Response(
            content=result.content,
            status_code=result.status_code,
            media_type="application/json",
            headers=request.state.proxy_headers,
        )
