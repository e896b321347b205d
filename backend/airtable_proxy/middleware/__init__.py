"""
Airtable Edge Proxy — Middleware Package
=========================================

Cross-cutting concerns applied to every request.

Middleware Chain:
    Request → [Request ID] → [Logging] → Route Handler

    Rate limiting and CORS are NOT middleware here: both depend on the
    admission order (preflight bypass, configuration check first), so the
    RequestHandler applies them inside the proxy routes.
"""
