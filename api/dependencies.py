"""
FastAPI dependencies (shared across routes).
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request

from connectors.location import LocationService, get_client_ip
from core.signin_negotiator import SigninNegotiator


def get_session_id(request: Request) -> str:
    """
    Opaque per-browser session identity, kept in the signed session cookie.
    Created on first use.
    """
    sid = request.session.get("sid")
    if not sid:
        sid = uuid.uuid4().hex
        request.session["sid"] = sid
        request.session["created_at"] = int(time.time() * 1000)
    return sid


def client_ip(request: Request) -> str:
    return get_client_ip(request)


def get_app_host(request: Request) -> str:
    """Origin the browser sees: ``APP_HOST`` if set, else scheme + Host header."""
    settings = request.app.state.settings
    if settings.app_host:
        return settings.app_host
    host = request.headers.get("host", "localhost:5173")
    return f"{request.url.scheme}://{host}"


def get_negotiator(request: Request) -> SigninNegotiator:
    return request.app.state.negotiator


def get_location_service(request: Request) -> LocationService:
    return request.app.state.location_service
