"""
McpConnector: one streamable-HTTP MCP client session per browser session.

The MCP transport is built on anyio task groups, which must be entered
and exited by the same task.  Each connector therefore runs its transport
inside a dedicated background task that stays parked until ``close()``;
request handlers only talk to the ``ClientSession`` it publishes.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client
from mcp.types import CallToolResult, Implementation, TextContent

from config.settings import Settings
from connectors.base import BaseConnector, ConnectorError, ToolCallError
from utils.schemas import LocationData

logger = logging.getLogger(__name__)

ConnectorFactory = Callable[[str, Optional[LocationData]], BaseConnector]


def build_headers(
    settings: Settings,
    session_id: str,
    location: Optional[LocationData],
) -> Dict[str, str]:
    """Authentication + context headers sent on every MCP request."""
    return {
        "Authorization": f"Bearer {settings.getgather_app_key}_{session_id}",
        "x-getgather-custom-app": settings.custom_app_name,
        "x-location": location.model_dump_json() if location else "",
        "x-incognito": "1",
    }


def extract_payload(result: CallToolResult) -> Dict[str, Any]:
    """
    Return the structured content of a tool result.

    Servers that only emit text blocks get their first JSON text block
    decoded instead; anything else yields an empty dict.
    """
    if result.structuredContent is not None:
        return dict(result.structuredContent)
    for block in result.content:
        if isinstance(block, TextContent):
            try:
                decoded = json.loads(block.text)
            except json.JSONDecodeError:
                continue
            if isinstance(decoded, dict):
                return decoded
    return {}


def _error_text(result: CallToolResult) -> str:
    texts = [b.text for b in result.content if isinstance(b, TextContent)]
    return " ".join(texts) or "unknown error"


class McpConnector(BaseConnector):
    """MCP client channel to the upstream automation service."""

    def __init__(
        self,
        session_id: str,
        url: str,
        headers: Dict[str, str],
        *,
        connect_timeout: float = 30,
        read_timeout: float = 6000,
        client_info: Optional[Implementation] = None,
    ):
        super().__init__(session_id)
        self.url = url
        self.headers = headers
        self._connect_timeout = connect_timeout
        self._read_timeout = read_timeout
        self._client_info = client_info
        self._session: Optional[ClientSession] = None
        self._runner: Optional[asyncio.Task] = None
        self._ready: Optional[asyncio.Future] = None
        self._stop = asyncio.Event()

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    # ── lifecycle ───────────────────────────────────────────────────────

    async def connect(self) -> None:
        if self._runner is not None:
            raise ConnectorError("connector already started")
        self._ready = asyncio.get_running_loop().create_future()
        self._runner = asyncio.create_task(
            self._run(), name=f"mcp-connector-{self.session_id}"
        )
        try:
            await asyncio.wait_for(asyncio.shield(self._ready), self._connect_timeout)
        except asyncio.TimeoutError as exc:
            await self.close()
            raise ConnectorError(
                f"MCP channel did not open within {self._connect_timeout}s"
            ) from exc
        except BaseException:
            await self.close()
            raise
        logger.info("MCP channel open for session %s", self.session_id)

    async def _run(self) -> None:
        try:
            async with streamablehttp_client(
                self.url,
                headers=self.headers,
                timeout=timedelta(seconds=self._connect_timeout),
                sse_read_timeout=timedelta(seconds=self._read_timeout),
            ) as (read_stream, write_stream, _get_session_id):
                async with ClientSession(
                    read_stream, write_stream, client_info=self._client_info
                ) as session:
                    await session.initialize()
                    self._session = session
                    self._ready.set_result(None)
                    await self._stop.wait()
        except Exception as exc:
            if not self._ready.done():
                self._ready.set_exception(ConnectorError(f"MCP connect failed: {exc}"))
            else:
                logger.warning(
                    "MCP channel for session %s ended: %s", self.session_id, exc
                )
        finally:
            self._session = None
            if not self._ready.done():
                self._ready.set_exception(ConnectorError("MCP channel closed before it opened"))

    async def close(self) -> None:
        self._stop.set()
        runner, self._runner = self._runner, None
        if runner is None or runner.done():
            return
        try:
            await asyncio.wait_for(runner, self._connect_timeout)
        except asyncio.TimeoutError:
            runner.cancel()
        logger.info("MCP channel closed for session %s", self.session_id)

    # ── remote operations ───────────────────────────────────────────────

    async def call_tool(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        session = self._session
        if session is None:
            raise ConnectorError(f"MCP channel for session {self.session_id} is not open")

        self.touch()
        result = await session.call_tool(
            name,
            arguments or {},
            read_timeout_seconds=timedelta(seconds=timeout) if timeout else None,
        )
        self.touch()
        if result.isError:
            raise ToolCallError(name, _error_text(result))
        return extract_payload(result)


def mcp_connector_factory(settings: Settings) -> ConnectorFactory:
    """Build the factory the ConnectorRegistry uses to open channels."""
    client_info = Implementation(
        name=settings.mcp_client_name, version=settings.mcp_client_version
    )

    def factory(session_id: str, location: Optional[LocationData]) -> BaseConnector:
        return McpConnector(
            session_id,
            settings.mcp_url,
            build_headers(settings, session_id, location),
            connect_timeout=settings.connect_timeout_seconds,
            read_timeout=settings.poll_timeout_seconds,
            client_info=client_info,
        )

    return factory
