"""
BaseConnector: abstract interface for a session-bound channel to the
upstream automation service.

The registry owns connectors; everything else only calls ``call_tool``.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class ConnectorError(Exception):
    """The upstream channel could not be opened or is no longer usable."""


class ToolCallError(ConnectorError):
    """The remote tool ran but reported an error result."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class BaseConnector(ABC):
    """Abstract base for all upstream connectors."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.last_used = time.monotonic()

    # ── Lifecycle ───────────────────────────────────────────────────────

    @abstractmethod
    async def connect(self) -> None:
        """Open the channel.  Raises on failure; nothing is kept open then."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the channel.  Must be safe to call more than once."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        ...

    # ── Remote operations ───────────────────────────────────────────────

    @abstractmethod
    async def call_tool(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Invoke a named remote operation.

        Parameters
        ----------
        timeout : float, optional
            Seconds to wait for the result; None uses the channel default.

        Returns
        -------
        The tool's structured result as a dict.
        """
        ...

    # ── Helpers ─────────────────────────────────────────────────────────

    def touch(self) -> None:
        self.last_used = time.monotonic()

    def idle_seconds(self) -> float:
        return time.monotonic() - self.last_used
