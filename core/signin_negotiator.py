"""
SigninNegotiator: server half of the sign-in protocol.

``start`` asks the upstream to begin a sign-in and returns a hand-off URL
rewritten onto this server's origin (the browser reaches the upstream
pages through our reverse proxy) plus the correlation id.

``poll`` relays one ``check_signin`` long-poll.  The upstream call blocks
while the user signs in, so it runs with a very long timeout.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from tools.invoker import ToolInvoker
from utils.schemas import BrandConfig, SigninHandle

logger = logging.getLogger(__name__)


class SigninError(Exception):
    """Protocol-level failure; reported to the client, never retried."""


class MissingSigninIdError(SigninError):
    def __init__(self) -> None:
        super().__init__("signin_id is required")


class SigninNegotiator:
    def __init__(
        self,
        invoker: ToolInvoker,
        brand: BrandConfig,
        *,
        upstream_url: str,
        start_timeout: Optional[float] = None,
        poll_timeout: float = 6000,
    ):
        self._invoker = invoker
        self.brand = brand
        self._upstream_url = upstream_url.rstrip("/")
        self._start_timeout = start_timeout
        self._poll_timeout = poll_timeout

    async def start(
        self,
        session_id: str,
        ip_address: str,
        app_host: str,
        keywords: Optional[List[str]] = None,
    ) -> SigninHandle:
        arguments = {"keywords": keywords} if keywords else None
        result = await self._invoker.call(
            session_id,
            ip_address,
            self.brand.signin_tool,
            arguments,
            timeout=self._start_timeout,
        )

        url = result.get("url")
        if not url or self._upstream_url not in url:
            logger.warning(
                "No sign-in URL in %s result for session %s",
                self.brand.signin_tool,
                session_id,
            )
            raise SigninError("No signin URL found")

        return SigninHandle(
            url=self.rewrite_url(url, app_host),
            signin_id=result.get("signin_id"),
        )

    async def poll(
        self,
        session_id: str,
        ip_address: str,
        signin_id: Optional[str],
    ) -> Dict[str, Any]:
        if not signin_id:
            raise MissingSigninIdError()

        result = await self._invoker.call(
            session_id,
            ip_address,
            self.brand.poll_tool,
            {"signin_id": signin_id},
            timeout=self._poll_timeout,
        )
        transform = self.brand.data_transform
        return {
            "status": result.get("status"),
            "message": result.get("message"),
            transform.data_path: result.get(transform.result_field),
        }

    def rewrite_url(self, url: str, app_host: str) -> str:
        """Swap the upstream origin for the externally visible one."""
        return url.replace(self._upstream_url, app_host.rstrip("/"), 1)
