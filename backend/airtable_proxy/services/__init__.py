# Services package init
"""
Airtable Edge Proxy — Services Layer
=====================================

Service Inventory (leaves first):
    - RateLimiter:     per-client fixed-window counters
    - AccessPolicy:    base/table allow-list, segment and embedded path forms
    - CorsPolicy:      CORS headers, strict or lenient
    - UpstreamProxy:   the single outbound call to Airtable (httpx)
    - RequestHandler:  runs the admission steps in order

Every service is constructed by create_app() and passed its collaborators
explicitly; none of them reads the global settings object.
"""
