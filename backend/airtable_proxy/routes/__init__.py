# Routes package init
"""
Airtable Edge Proxy — API Routes Package
=========================================

Route Inventory:
    - proxy.py:   /api/airtable/{base}/{table}[/{record}]   (path-segment form)
                  /api/airtable?path=...                    (query-parameter form)
    - health.py:  GET /health                               (service health check)

Routes stay thin: the admission pipeline lives in services.request_handler.
"""
