"""
Airtable Edge Proxy — Application Package
==========================================

A small FastAPI service that sits between a browser dashboard and the
Airtable REST API. It keeps the Airtable token server-side, only lets
allow-listed bases and tables through, rate limits each client, and sends
CORS headers for approved origins only.

    ┌─────────────────────────────────────┐
    │        Routes (API Layer)           │  ← HTTP shapes only
    ├─────────────────────────────────────┤
    │  Services (Admission Pipeline)      │  ← policies, limiter, upstream
    ├─────────────────────────────────────┤
    │  Config / Exceptions / Middleware   │  ← ambient concerns
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
