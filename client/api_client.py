"""
ApiClient: async HTTP client for the ``/api`` surface.

Every response uses the ``{success, data, error}`` envelope.  A non-2xx
status or ``success: false`` raises ``ApiError``; otherwise ``data`` is
returned.  The underlying ``httpx.AsyncClient`` keeps the session cookie
so consecutive calls hit the same server-side connector.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from utils.schemas import SigninHandle


class ApiError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ApiClient:
    def __init__(
        self,
        base_url: str = "http://localhost:3001",
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        # No read timeout by default: poll-signin is a long-poll.
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout, connect=10.0),
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, endpoint: str, payload: Dict[str, Any]) -> Any:
        response = await self._client.post(f"/api{endpoint}", json=payload)

        try:
            result = response.json()
        except ValueError:
            result = None

        if not response.is_success:
            message = result.get("error") if isinstance(result, dict) else None
            raise ApiError(
                message or f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )
        if not isinstance(result, dict) or not result.get("success"):
            error = result.get("error") if isinstance(result, dict) else None
            raise ApiError(error or "API request failed", status_code=response.status_code)

        return result.get("data")

    async def get_book_list(self, keywords: Optional[List[str]] = None) -> SigninHandle:
        data = await self._request("/get-book-list", {"keywords": keywords or []})
        return SigninHandle(**data)

    async def poll_signin(self, signin_id: str) -> Dict[str, Any]:
        data = await self._request("/poll-signin", {"signin_id": signin_id})
        return data or {}
