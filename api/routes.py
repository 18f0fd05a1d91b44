"""
REST API routes: sign-in start / poll and health.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.dependencies import client_ip, get_app_host, get_negotiator, get_session_id
from core.signin_negotiator import MissingSigninIdError, SigninError, SigninNegotiator
from utils.schemas import GetBookListRequest, PollSigninRequest

logger = logging.getLogger(__name__)

router = APIRouter()


def _failure(error: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


@router.get("/health")
async def health_check() -> Dict[str, str]:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.post("/api/get-book-list")
async def get_book_list(
    payload: GetBookListRequest | None = None,
    session_id: str = Depends(get_session_id),
    ip_address: str = Depends(client_ip),
    app_host: str = Depends(get_app_host),
    negotiator: SigninNegotiator = Depends(get_negotiator),
) -> Any:
    """Start a sign-in; returns the hand-off URL and the signin_id to poll."""
    keywords = payload.keywords if payload else []
    try:
        handle = await negotiator.start(session_id, ip_address, app_host, keywords)
    except SigninError as exc:
        return {"success": False, "error": str(exc)}
    except Exception as exc:
        logger.exception("Get book list error (session=%s)", session_id)
        return _failure(str(exc) or "Unknown error", 500)

    return {"success": True, "data": handle.model_dump()}


@router.post("/api/poll-signin")
async def poll_signin(
    payload: PollSigninRequest | None = None,
    session_id: str = Depends(get_session_id),
    ip_address: str = Depends(client_ip),
    negotiator: SigninNegotiator = Depends(get_negotiator),
) -> Any:
    """
    Long-poll the upstream for the sign-in outcome.

    The ``status`` / ``message`` / data triple is relayed verbatim; the
    client decides what PENDING or SUCCESS mean for its loop.
    """
    signin_id = payload.signin_id if payload else None
    try:
        data = await negotiator.poll(session_id, ip_address, signin_id)
    except MissingSigninIdError as exc:
        return _failure(str(exc), 400)
    except Exception as exc:
        logger.exception("Poll auth error (session=%s)", session_id)
        return _failure(str(exc) or "Unknown error", 500)

    return {"success": True, "data": data}
