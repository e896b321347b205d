"""
Airtable Edge Proxy — Upstream (Airtable) Proxy
================================================

What:  Translates a validated inbound request into one call to the Airtable
       REST API and relays the result.
Why:   Keeps the bearer token server-side and narrows what a browser can ask
       Airtable to do.
How:   httpx.AsyncClient with a bounded timeout. One attempt per request;
       any transport failure becomes UpstreamUnavailableError (502).

Forwarding rules:
    URL     {api_url}/{base}/{quote(table)}[/{quote(record)}], each one segment
    Query   allowlist: pageSize, offset, maxRecords, filterByFormula, view,
                       and any key starting with "sort["
            passthrough: original query string, unmodified apart from
                         removing the proxy's own ?path= pair
    Headers Authorization: Bearer <token>, Content-Type: application/json.
            Nothing from the client's headers is forwarded.
    Body    POST/PATCH/PUT only. json mode re-serializes after parsing,
            raw mode forwards bytes untouched.

Retries:
    None. A failed upstream call is reported immediately; the caller decides
    whether to try again.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple
from urllib.parse import parse_qsl, quote, unquote_plus, urlencode

import httpx

from airtable_proxy.exceptions import MalformedBodyError, UpstreamUnavailableError
from airtable_proxy.services.access_policy import ResourcePath

logger = logging.getLogger(__name__)

BODY_METHODS = frozenset({"POST", "PATCH", "PUT"})

ALLOWED_QUERY_PARAMS = frozenset(
    {"pageSize", "offset", "maxRecords", "filterByFormula", "view"}
)
SORT_PARAM_PREFIX = "sort["


class QueryForwarding(str, Enum):
    ALLOWLIST = "allowlist"
    PASSTHROUGH = "passthrough"


class BodyForwarding(str, Enum):
    JSON = "json"
    RAW = "raw"


@dataclass(frozen=True)
class UpstreamResult:
    status_code: int
    content: bytes


def is_forwardable_param(name: str) -> bool:
    return name in ALLOWED_QUERY_PARAMS or name.startswith(SORT_PARAM_PREFIX)


def filter_query_params(items: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """Keep only allow-listed parameters, in their original order."""
    return [(name, value) for name, value in items if is_forwardable_param(name)]


class UpstreamProxy:
    """
    Client for the Airtable REST API.

    Args:
        token: Airtable personal access token (may be empty; the request
               handler refuses to proxy in that case)
        api_url: Base URL, e.g. https://api.airtable.com/v0
        timeout: Seconds before the outbound call is abandoned
        query_forwarding: allowlist or passthrough
        body_forwarding: json or raw
        transport: Optional httpx transport (tests inject MockTransport)
    """

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.airtable.com/v0",
        timeout: float = 10.0,
        query_forwarding: QueryForwarding = QueryForwarding.ALLOWLIST,
        body_forwarding: BodyForwarding = BodyForwarding.JSON,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._token = token.strip()
        self.api_url = api_url.rstrip("/")
        self.query_forwarding = QueryForwarding(query_forwarding)
        self.body_forwarding = BodyForwarding(body_forwarding)
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            transport=transport,
            follow_redirects=False,
        )

    @property
    def token_configured(self) -> bool:
        return bool(self._token)

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Request shaping ───────────────────────────────────────────────────

    def build_url(self, resource: ResourcePath) -> str:
        url = f"{self.api_url}/{resource.base_id}/{quote(resource.table_name, safe='')}"
        if resource.record_id:
            # Encoded as one segment so "?", "#" or "/" cannot leave the path
            url += f"/{quote(resource.record_id, safe='')}"
        return url

    def build_query(self, raw_query: str, exclude: Iterable[str] = ()) -> str:
        """
        Query string to send upstream, without the leading "?".

        `exclude` names parameters that belong to the proxy itself (the
        ?path= parameter) and never go upstream.
        """
        excluded = set(exclude)
        if self.query_forwarding is QueryForwarding.PASSTHROUGH:
            if not excluded:
                return raw_query
            # Drop whole pairs so the remaining ones keep their original bytes
            pairs = [pair for pair in raw_query.split("&") if pair]
            return "&".join(
                pair for pair in pairs if unquote_plus(pair.split("=", 1)[0]) not in excluded
            )

        items = parse_qsl(raw_query, keep_blank_values=True)
        return urlencode(filter_query_params(items))

    def prepare_body(self, method: str, raw_body: Optional[bytes]) -> Optional[bytes]:
        """
        Body to send upstream, or None when nothing should be sent.

        Raises:
            MalformedBodyError: json mode and the body does not parse
        """
        if method.upper() not in BODY_METHODS:
            return None

        if self.body_forwarding is BodyForwarding.RAW:
            return raw_body or None

        try:
            parsed = json.loads(raw_body or b"")
        except ValueError as e:
            raise MalformedBodyError(context={"reason": str(e)}) from e
        return json.dumps(parsed).encode("utf-8")

    # ── Forwarding ────────────────────────────────────────────────────────

    async def forward(
        self,
        resource: ResourcePath,
        method: str,
        body: Optional[bytes] = None,
        query: str = "",
    ) -> UpstreamResult:
        """
        Send the request to Airtable and return its status and body.

        Raises:
            UpstreamUnavailableError: network error, timeout, or (json mode)
                                      a body that is not JSON
        """
        url = self.build_url(resource)
        if query:
            url = f"{url}?{query}"

        headers = {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }

        try:
            response = await self._client.request(
                method.upper(), url, headers=headers, content=body
            )
        except httpx.TimeoutException as e:
            logger.error(
                "Airtable request timed out: %s %s/%s",
                method,
                resource.base_id,
                resource.table_name,
            )
            raise UpstreamUnavailableError(
                details="Upstream request timed out",
                context={"exception": type(e).__name__},
            ) from e
        except httpx.HTTPError as e:
            logger.error("Airtable request failed: %s (%s)", type(e).__name__, e)
            raise UpstreamUnavailableError(
                details="Upstream request failed",
                context={"exception": type(e).__name__},
            ) from e

        logger.debug(
            "Airtable responded %d for %s %s/%s",
            response.status_code,
            method,
            resource.base_id,
            resource.table_name,
        )

        if self.body_forwarding is BodyForwarding.RAW:
            return UpstreamResult(response.status_code, response.content)

        try:
            data = response.json()
        except ValueError as e:
            logger.error("Airtable returned a non-JSON body (status %d)", response.status_code)
            raise UpstreamUnavailableError(
                details="Upstream returned an invalid response",
                context={"status_code": response.status_code},
            ) from e
        return UpstreamResult(response.status_code, json.dumps(data).encode("utf-8"))
