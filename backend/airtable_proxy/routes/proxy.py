"""
Airtable Edge Proxy — Proxy Route Handlers
===========================================

What:  The two inbound shapes of the Airtable proxy.
How:   Thin wrappers: each route hands the raw request to the application's
       RequestHandler, which runs the admission pipeline.

Route Inventory:
    /api/airtable/{base}/{table}[/{record}]      path-segment form
    /api/airtable?path={base}/{table}[/{record}] query-parameter form

Both accept GET, POST, PATCH, PUT, DELETE and OPTIONS (preflight).
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from airtable_proxy.schemas.proxy import ErrorResponse
from airtable_proxy.services.request_handler import RequestHandler

router = APIRouter(prefix="/api", tags=["Airtable Proxy"])

PROXY_METHODS = ["GET", "POST", "PATCH", "PUT", "DELETE", "OPTIONS"]

ERROR_RESPONSES = {
    400: {"description": "Invalid path or malformed JSON body", "model": ErrorResponse},
    403: {"description": "Resource or origin not allowed", "model": ErrorResponse},
    429: {"description": "Rate limit exceeded", "model": ErrorResponse},
    500: {"description": "Server configuration error", "model": ErrorResponse},
    502: {"description": "Airtable unreachable", "model": ErrorResponse},
}


def get_request_handler(request: Request) -> RequestHandler:
    """The pipeline built by create_app() for this application."""
    return request.app.state.request_handler


@router.api_route(
    "/airtable",
    methods=PROXY_METHODS,
    responses=ERROR_RESPONSES,
    summary="Proxy an Airtable call (query-parameter form)",
    description=(
        "The resource is given as ?path={baseId}/{tableName}[/{recordId}]. "
        "Only pagination, sort, filterByFormula and view parameters are forwarded "
        "unless the proxy runs in passthrough mode."
    ),
)
async def proxy_embedded(
    request: Request,
    handler: RequestHandler = Depends(get_request_handler),
) -> Response:
    return await handler.handle_embedded(request)


@router.api_route(
    "/airtable/{resource_path:path}",
    methods=PROXY_METHODS,
    responses=ERROR_RESPONSES,
    summary="Proxy an Airtable call (path-segment form)",
    description=(
        "The resource is given as /api/airtable/{baseId}/{tableName}[/{recordId}]. "
        "Base and table must be on the allow-list."
    ),
)
async def proxy_segments(
    resource_path: str,
    request: Request,
    handler: RequestHandler = Depends(get_request_handler),
) -> Response:
    return await handler.handle_segments(request, resource_path)
