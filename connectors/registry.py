"""
ConnectorRegistry: owns at most one live upstream connector per session.

Built once at startup and injected into request handlers through
``app.state``.  Creation is serialised per session: callers that race
to create the connector for the same session all await one shared
in-flight creation task and receive the same handle.  Different
sessions never share a handle and never wait on each other.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from connectors.base import BaseConnector
from connectors.location import LocationService
from connectors.mcp_connector import ConnectorFactory

logger = logging.getLogger(__name__)

# Default for ``expected``: drop whatever handle is current.
_ANY = object()


class ConnectorRegistry:
    """Session id → connector map with lazy, de-duplicated creation."""

    def __init__(self, factory: ConnectorFactory, location_service: LocationService):
        self._factory = factory
        self._location_service = location_service
        self._connectors: Dict[str, BaseConnector] = {}
        self._pending: Dict[str, asyncio.Task] = {}

    # ── acquire / invalidate / reset ────────────────────────────────────

    async def acquire(self, session_id: str, ip_address: str) -> BaseConnector:
        """Return the session's connector, creating it on first use."""
        connector = self._connectors.get(session_id)
        if connector is not None:
            return connector

        task = self._pending.get(session_id)
        if task is None:
            task = asyncio.create_task(self._create(session_id, ip_address))
            self._pending[session_id] = task
            task.add_done_callback(lambda t, sid=session_id: self._clear_pending(sid, t))
        # A cancelled waiter must not cancel creation for the others.
        return await asyncio.shield(task)

    async def invalidate(self, session_id: str, expected: Any = _ANY) -> bool:
        """
        Close (best effort) and forget the session's connector.

        With *expected*, only that exact handle is dropped; if the session
        already holds a different one (another request replaced it), the
        current handle is left alone.  Returns True if a handle was dropped.
        """
        connector = self._connectors.get(session_id)
        if connector is None:
            return False
        if expected is not _ANY and connector is not expected:
            return False
        del self._connectors[session_id]
        try:
            await connector.close()
        except Exception as exc:
            logger.debug("Ignoring close error for session %s: %s", session_id, exc)
        logger.info("Connector invalidated for session %s", session_id)
        return True

    async def reset(
        self, session_id: str, ip_address: str, failed: Any = _ANY
    ) -> BaseConnector:
        """
        Tear down the session's connector and return a working one.

        Pass the handle that just *failed* so a concurrent caller that
        already replaced it does not get its fresh handle closed; the
        fresh handle is returned instead.  ``failed=None`` means the caller
        never got a handle, so nothing is torn down.
        """
        await self.invalidate(session_id, expected=failed)
        return await self.acquire(session_id, ip_address)

    # ── housekeeping ────────────────────────────────────────────────────

    async def sweep_idle(self, max_idle_seconds: float) -> int:
        """Invalidate connectors unused for longer than *max_idle_seconds*."""
        stale = [
            sid
            for sid, conn in self._connectors.items()
            if conn.idle_seconds() > max_idle_seconds or not conn.is_connected
        ]
        for sid in stale:
            await self.invalidate(sid)
        if stale:
            logger.info("Swept %d idle connector(s)", len(stale))
        return len(stale)

    async def close_all(self) -> None:
        for task in list(self._pending.values()):
            task.cancel()
        for sid in list(self._connectors):
            await self.invalidate(sid)

    def get(self, session_id: str) -> Optional[BaseConnector]:
        return self._connectors.get(session_id)

    def active_sessions(self) -> List[str]:
        return list(self._connectors.keys())

    # ── internals ───────────────────────────────────────────────────────

    async def _create(self, session_id: str, ip_address: str) -> BaseConnector:
        location = await self._location_service.resolve(ip_address)
        connector = self._factory(session_id, location)
        await connector.connect()
        self._connectors[session_id] = connector
        logger.info("Connector created for session %s", session_id)
        return connector

    def _clear_pending(self, session_id: str, task: asyncio.Task) -> None:
        if self._pending.get(session_id) is task:
            del self._pending[session_id]
        if not task.cancelled() and task.exception() is not None:
            logger.warning(
                "Connector creation failed for session %s: %s", session_id, task.exception()
            )
