"""
Airtable Edge Proxy — Test Configuration (conftest.py)
=======================================================

What:  Shared pytest fixtures for the entire test suite.
Why:   Tests never talk to the real Airtable API; the upstream is an
       httpx.MockTransport that records every call it receives.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── test_settings:  Settings with a token, small rate limit, test allow-lists
    ├── fake_clock:     Controllable millisecond clock for the rate limiter
    ├── upstream:       Recording Airtable stub (call counter + canned responses)
    ├── make_app:       Builds an app from settings overrides
    └── test_client:    HTTPX AsyncClient bound to an app via ASGITransport
"""

import json
import os
from typing import Callable, List, Optional

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Keep the module-level app (built at import) away from any real token
os.environ["AIRTABLE_TOKEN"] = "test-token-not-real"
os.environ["LOG_LEVEL"] = "WARNING"

from airtable_proxy.config import Settings  # noqa: E402
from airtable_proxy.main import create_app  # noqa: E402

TEST_BASE = "appTEST1234567890"
TEST_ORIGIN = "https://dashboard.example.com"
OTHER_ORIGIN = "https://evil.example.net"


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class UpstreamStub:
    """
    Stand-in for api.airtable.com.

    Every request is appended to `calls`. The response is JSON `payload` with
    `status_code`, unless `error` is set, in which case it is raised as a
    transport failure.
    """

    def __init__(self):
        self.calls: List[httpx.Request] = []
        self.status_code = 200
        self.payload: object = {"records": []}
        self.raw_content: Optional[bytes] = None
        self.error: Optional[Exception] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        if self.raw_content is not None:
            return httpx.Response(self.status_code, content=self.raw_content)
        return httpx.Response(self.status_code, json=self.payload)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def last_call(self) -> httpx.Request:
        return self.calls[-1]

    def last_body(self) -> object:
        return json.loads(self.last_call.content)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        airtable_token="test-token-not-real",
        airtable_api_url="https://api.airtable.test/v0",
        allowed_bases=TEST_BASE,
        allowed_tables="Clients,Calls,Leads,Team Members,Team%20Members",
        cors_origins=f"{TEST_ORIGIN},http://localhost:3000",
        cors_mode="strict",
        query_forwarding="allowlist",
        body_forwarding="json",
        rate_limit_requests=5,
        rate_limit_window_ms=60_000,
        log_level="WARNING",
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream() -> UpstreamStub:
    return UpstreamStub()


@pytest.fixture
def make_app(test_settings, upstream, fake_clock) -> Callable:
    """
    Build an app wired to the upstream stub and fake clock.

    Usage:
        app = make_app(cors_mode="lenient", body_forwarding="raw")
    """

    def _make(**overrides):
        config = test_settings.model_copy(update=overrides)
        return create_app(config, transport=upstream.transport, clock=fake_clock)

    return _make


@pytest_asyncio.fixture
async def test_client(make_app):
    """
    HTTPX AsyncClient talking to a default test app.

    Usage:
        async def test_list(test_client):
            response = await test_client.get(f"/api/airtable/{TEST_BASE}/Clients")
    """
    app = make_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://proxy.test") as client:
        yield client


@pytest_asyncio.fixture
async def client_for(make_app):
    """Factory variant of test_client for tests that need non-default settings."""
    clients = []

    async def _client(**overrides) -> AsyncClient:
        app = make_app(**overrides)
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://proxy.test")
        clients.append(client)
        return client

    yield _client
    for client in clients:
        await client.aclose()
