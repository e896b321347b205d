"""
Airtable Edge Proxy — Response Schemas
=======================================

What:  Pydantic models describing the proxy's own responses.
Why:   They document the error and health contracts in the OpenAPI spec.
       Proxied Airtable payloads are relayed as-is and have no schema here.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Error body returned for every rejected or failed request.

    Example:
        {
            "error": "Table not allowed",
            "code": "resource_not_allowed",
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Human-readable reason the request was refused")
    code: str = Field(description="Machine-readable error code")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")
    resetAt: Optional[int] = Field(
        default=None, description="Rate limit reset time, epoch milliseconds (429 only)"
    )
    details: Optional[str] = Field(
        default=None, description="Short upstream failure description (502 only)"
    )


class HealthResponse(BaseModel):
    """Returned by GET /health for monitoring and load balancer probes."""
    status: str = Field(description="Overall service status: healthy or degraded")
    version: str = Field(description="Application version")
    token_configured: bool = Field(description="Whether AIRTABLE_TOKEN is set")
    cors_mode: str = Field(description="Active CORS policy: strict or lenient")
    tracked_clients: int = Field(description="Clients currently held by the rate limiter")
    uptime_seconds: float = Field(description="Seconds since service started")
