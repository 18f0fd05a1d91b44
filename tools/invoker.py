"""
ToolInvoker: runs one named remote operation against a session's
connector, with exactly one reconnect-and-retry on failure.

Upstream channels can die silently (idle timeout, upstream restart).  A
single reconnect recovers from that; a second failure is the caller's.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from connectors.registry import ConnectorRegistry

logger = logging.getLogger(__name__)


class ToolInvoker:
    def __init__(self, registry: ConnectorRegistry):
        self._registry = registry

    async def call(
        self,
        session_id: str,
        ip_address: str,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Call tool *name* for *session_id*.

        Any exception from acquiring the connector or from the call itself
        triggers ``registry.reset`` and one more attempt; the second
        attempt's exception propagates unchanged.  Only the handle that
        failed is torn down, so concurrent calls in the same session that
        hit the same dead channel share one replacement.
        """
        logger.info("Calling tool %s (session=%s)", name, session_id)
        connector = None
        try:
            connector = await self._registry.acquire(session_id, ip_address)
            return await connector.call_tool(name, arguments, timeout=timeout)
        except Exception as exc:
            logger.warning(
                "Tool %s failed for session %s, reconnecting: %s",
                name,
                session_id,
                exc,
            )

        connector = await self._registry.reset(session_id, ip_address, failed=connector)
        return await connector.call_tool(name, arguments, timeout=timeout)
