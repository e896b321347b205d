"""
Airtable Edge Proxy — Application Configuration
================================================

What:  Centralized configuration management using Pydantic Settings.
Why:   The proxy's whole security posture (token, allow-lists, CORS origins,
       rate limits) is configuration. Loading it through one typed object
       keeps every policy component reading the same values.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
       Tests build their own Settings(...) and hand it to create_app().
Who:   Read by the app factory, which passes values into each component.
When:  Loaded once at module import time; validated before app starts.

Design Decision:
    Allow-lists are plain comma-separated strings in the environment and are
    exposed as sets/lists through properties, the same way CORS origins are.
    Alternative considered: JSON-encoded env vars. pydantic-settings supports
    them, but they are awkward to set in hosting dashboards.
"""

from typing import List, Set

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for development, except the upstream
    token: without AIRTABLE_TOKEN every proxied request fails closed with 500.

    Attributes are grouped by concern for readability.
    """

    # ── Upstream (Airtable) ───────────────────────────────────────────────
    # What: Personal access token injected as the upstream bearer credential
    # Required: YES. Never sent to or accepted from the browser
    airtable_token: str = Field(
        default="",
        description="Airtable personal access token (server-side secret)",
    )

    airtable_api_url: str = Field(default="https://api.airtable.com/v0")

    # What: Bounded timeout for the single outbound call
    # Trade-off: Long enough for large list pages, short enough to free the worker
    upstream_timeout_seconds: float = Field(default=10.0, gt=0, le=120)

    # ── Resource Allow-Lists ──────────────────────────────────────────────
    # Format: Comma-separated identifiers, exact and case-sensitive.
    # For the ?path= form, list both spellings of tables with spaces:
    #   ALLOWED_TABLES="Clients,Team Members,Team%20Members"
    allowed_bases: str = Field(default="appXXXXXXXXXXXXXX")
    allowed_tables: str = Field(default="Clients,Calls,Leads,Costs,Revenue,Settings")

    @property
    def allowed_bases_set(self) -> Set[str]:
        return set(_split_csv(self.allowed_bases))

    @property
    def allowed_tables_set(self) -> Set[str]:
        return set(_split_csv(self.allowed_tables))

    # ── CORS ──────────────────────────────────────────────────────────────
    cors_origins: str = Field(
        default=(
            "https://prioai.ca,"
            "https://dashboard.prioai.ca,"
            "https://www.prioai.ca,"
            "http://localhost:3000,"
            "http://localhost:8788,"
            "http://127.0.0.1:3000,"
            "http://127.0.0.1:8788"
        )
    )

    # strict:  reflect only allow-listed origins, omit the header otherwise
    # lenient: always send an origin (fallback to default) and reject
    #          non-GET calls from unknown origins with 403
    cors_mode: str = Field(default="strict")

    # Used by lenient mode when the request origin is not allowed.
    # Empty means "first entry of cors_origins".
    cors_default_origin: str = Field(default="")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return _split_csv(self.cors_origins)

    @field_validator("cors_mode")
    @classmethod
    def validate_cors_mode(cls, v: str) -> str:
        lower = v.strip().lower()
        if lower not in {"strict", "lenient"}:
            raise ValueError(f"Invalid cors_mode '{v}'. Must be 'strict' or 'lenient'")
        return lower

    # ── Forwarding Policy ─────────────────────────────────────────────────
    # allowlist:   only pagination/sort/filter/view parameters reach Airtable
    # passthrough: the client's query string is appended unmodified
    query_forwarding: str = Field(default="allowlist")

    # json: parse and re-serialize bodies (malformed JSON → 400)
    # raw:  forward body bytes untouched
    body_forwarding: str = Field(default="json")

    @field_validator("query_forwarding")
    @classmethod
    def validate_query_forwarding(cls, v: str) -> str:
        lower = v.strip().lower()
        if lower not in {"allowlist", "passthrough"}:
            raise ValueError(
                f"Invalid query_forwarding '{v}'. Must be 'allowlist' or 'passthrough'"
            )
        return lower

    @field_validator("body_forwarding")
    @classmethod
    def validate_body_forwarding(cls, v: str) -> str:
        lower = v.strip().lower()
        if lower not in {"json", "raw"}:
            raise ValueError(f"Invalid body_forwarding '{v}'. Must be 'json' or 'raw'")
        return lower

    # ── Rate Limiting ─────────────────────────────────────────────────────
    # What: Per-client fixed window (1000 requests per minute by default)
    # Caveat: In-memory only; counters reset when the process restarts
    rate_limit_requests: int = Field(default=1000, ge=1, le=1_000_000)
    rate_limit_window_ms: int = Field(default=60_000, ge=1, le=86_400_000)

    # Header set by the edge network to the real client address.
    # Falls back to the first X-Forwarded-For entry, then "unknown".
    client_ip_header: str = Field(default="CF-Connecting-IP")

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1024, le=65535)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,  # AIRTABLE_TOKEN and airtable_token both work
    }

    @property
    def token_configured(self) -> bool:
        return bool(self.airtable_token.strip())

    def validate_required_for_production(self) -> None:
        """
        What:  Validates that critical settings are configured.
        When:  Called during app startup (lifespan).
        Why:   A missing token is reported once at startup instead of only
               showing up as a stream of 500 responses.
        """
        errors = []
        if not self.token_configured:
            errors.append(
                "AIRTABLE_TOKEN is not set. Every proxied request will fail with 500."
            )
        if not self.allowed_bases_set:
            errors.append("ALLOWED_BASES is empty. No base can be reached.")
        if not self.allowed_tables_set:
            errors.append("ALLOWED_TABLES is empty. No table can be reached.")
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


# Singleton instance, used when create_app() is called without settings
settings = Settings()
