"""
Reverse proxy onto the upstream automation service.

The hand-off URL returned by ``/api/get-book-list`` points at this
server, so the upstream's sign-in pages and their assets are forwarded
from a fixed set of path prefixes.  Any other ``/api/*`` path is
forwarded too; POST bodies there carry the caller's location.
"""

from __future__ import annotations

import json
import logging
from typing import Dict, Iterable, Tuple

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, Response

from api.dependencies import client_ip, get_location_service
from connectors.location import LocationService

logger = logging.getLogger(__name__)

_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]

# Not forwarded in either direction.
_HOP_BY_HOP = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
    "host",
    "content-length",
    "content-encoding",
}


def _forward_headers(headers: Iterable[Tuple[str, str]]) -> Dict[str, str]:
    return {k: v for k, v in headers if k.lower() not in _HOP_BY_HOP}


async def _forward(request: Request, body: bytes) -> Response:
    client: httpx.AsyncClient = request.app.state.proxy_client
    upstream = request.url.path
    if request.url.query:
        upstream += "?" + request.url.query
    try:
        resp = await client.request(
            request.method,
            upstream,
            headers=_forward_headers(request.headers.items()),
            content=body,
        )
    except httpx.HTTPError as exc:
        logger.error("Proxy error for %s %s: %s", request.method, request.url.path, exc)
        return PlainTextResponse("Proxy error occurred", status_code=502)

    response = Response(content=resp.content, status_code=resp.status_code)
    # append, not assign: upstream may send several Set-Cookie headers
    for key, value in resp.headers.multi_items():
        if key.lower() not in _HOP_BY_HOP:
            response.headers.append(key, value)
    return response


async def proxy_passthrough(request: Request) -> Response:
    return await _forward(request, await request.body())


async def proxy_api(
    request: Request,
    ip_address: str = Depends(client_ip),
    location_service: LocationService = Depends(get_location_service),
) -> Response:
    body = await request.body()
    if request.method == "POST":
        try:
            payload = json.loads(body) if body else {}
        except json.JSONDecodeError:
            return PlainTextResponse("Invalid JSON body", status_code=400)
        # Only JSON objects get a location; arrays and scalars pass through.
        if isinstance(payload, dict):
            location = await location_service.resolve(ip_address)
            payload["location"] = location.model_dump() if location else None
            body = json.dumps(payload).encode()
    return await _forward(request, body)


def build_proxy_router(proxy_paths: Iterable[str]) -> APIRouter:
    """
    Routes for every proxied prefix plus the ``/api`` catch-all.

    Include this router *after* the API routes so the core endpoints win.
    """
    router = APIRouter(include_in_schema=False)
    for prefix in proxy_paths:
        prefix = "/" + prefix.strip("/")
        router.add_api_route(prefix, proxy_passthrough, methods=_METHODS)
        router.add_api_route(prefix + "/{path:path}", proxy_passthrough, methods=_METHODS)
    router.add_api_route("/api/{path:path}", proxy_api, methods=_METHODS)
    return router
