"""
SigninPollLoop: client half of the sign-in protocol.

    IDLE ──start──▶ CONNECTING ──▶ POLLING ──▶ SUCCESS
                         │            │
                         └────────────┴──────▶ ERROR
    SUCCESS / ERROR ──reset──▶ IDLE

Poll calls are issued one at a time with the same signin_id.  A PENDING
answer is re-polled straight away; the server blocks for the slow part.
An error from a single poll is logged and the loop keeps going, because
the user may be minutes into an interactive sign-in.  Failed polls back
off exponentially (``error_backoff`` doubling up to ``max_error_backoff``)
so a short upstream outage does not use up the error budget.  The loop
gives up only after ``max_consecutive_errors`` failures in a row or when
``deadline_seconds`` expires.  ``cancel()`` abandons a loop whose consumer went away.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from client.api_client import ApiClient
from utils.data_transform import filter_unique, transform_data
from utils.schemas import DataTransformConfig, PollStatus, SigninHandle

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Progress step reported once the account data is in.
COMPLETED_STEP = 3


class SigninState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    POLLING = "polling"
    SUCCESS = "success"
    ERROR = "error"


class _Cancelled(Exception):
    pass


class SigninPollLoop:
    def __init__(
        self,
        api: ApiClient,
        transform_config: DataTransformConfig,
        *,
        on_connect_start: Optional[Callable[[], None]] = None,
        on_progress_step: Optional[Callable[[int], None]] = None,
        on_auth_complete: Optional[Callable[[], None]] = None,
        on_success: Optional[Callable[[List[Dict[str, Any]]], None]] = None,
        on_error: Optional[Callable[[str, str], None]] = None,
        max_consecutive_errors: Optional[int] = 25,
        deadline_seconds: Optional[float] = None,
        poll_interval: float = 0.0,
        error_backoff: float = 0.5,
        max_error_backoff: float = 5.0,
    ):
        self._api = api
        self._transform_config = transform_config
        self._on_connect_start = on_connect_start
        self._on_progress_step = on_progress_step
        self._on_auth_complete = on_auth_complete
        self._on_success = on_success
        self._on_error = on_error
        self.max_consecutive_errors = max_consecutive_errors
        self.deadline_seconds = deadline_seconds
        self.poll_interval = poll_interval
        self.error_backoff = error_backoff
        self.max_error_backoff = max_error_backoff
        self._cancel = asyncio.Event()
        self._running = False
        self._clear()

    def _clear(self) -> None:
        self.state = SigninState.IDLE
        self.handle: Optional[SigninHandle] = None
        self.signin_id: Optional[str] = None
        self.records: Optional[List[Dict[str, Any]]] = None
        self.raw_result: Optional[Dict[str, Any]] = None
        self.error: Optional[str] = None
        self.error_detail: Optional[str] = None
        self.poll_count = 0
        self.suppressed_errors = 0

    # ── public API ──────────────────────────────────────────────────────

    async def start(self, keywords: Optional[List[str]] = None) -> Optional[SigninHandle]:
        """Request a hand-off URL + signin_id.  Returns None on failure."""
        if self._running or self.state not in (SigninState.IDLE,):
            raise RuntimeError(f"cannot start sign-in from state {self.state.value}")

        self._cancel.clear()
        self.state = SigninState.CONNECTING
        try:
            handle = await self._until_cancelled(self._api.get_book_list(keywords))
        except _Cancelled:
            self._abandon()
            return None
        except Exception as exc:
            self._fail("Unable to start the connection", exc)
            return None

        if not handle.signin_id:
            self._fail("Unable to start the connection", ValueError("No Signin ID received"))
            return None

        self.handle = handle
        self.signin_id = handle.signin_id
        self.state = SigninState.POLLING
        return handle

    async def run(self, signin_id: Optional[str] = None) -> Optional[List[Dict[str, Any]]]:
        """
        Poll until SUCCESS and return the transformed records.

        Returns None when the attempt failed (state ERROR) or was
        cancelled (state IDLE).
        """
        if self.state in (SigninState.SUCCESS, SigninState.ERROR):
            raise RuntimeError(f"reset() before polling again (state {self.state.value})")
        signin_id = signin_id or self.signin_id
        if not signin_id:
            self._fail("Unable to start the connection", ValueError("No Signin ID received"))
            return None
        if self._running:
            raise RuntimeError("poll loop already running")

        self._running = True
        self.signin_id = signin_id
        self.state = SigninState.POLLING
        try:
            return await self._poll_until_done(signin_id)
        finally:
            self._running = False

    async def authenticate(self, keywords: Optional[List[str]] = None) -> Optional[List[Dict[str, Any]]]:
        """``start`` followed by ``run``."""
        handle = await self.start(keywords)
        if handle is None:
            return None
        return await self.run(handle.signin_id)

    def cancel(self) -> None:
        """Abandon the current attempt; the loop settles back in IDLE."""
        if self.state in (SigninState.CONNECTING, SigninState.POLLING):
            self._cancel.set()

    def reset(self) -> None:
        if self._running or self.state in (SigninState.CONNECTING,):
            raise RuntimeError("cannot reset while a sign-in is in progress")
        self._cancel.clear()
        self._clear()

    # ── loop ────────────────────────────────────────────────────────────

    async def _poll_until_done(self, signin_id: str) -> Optional[List[Dict[str, Any]]]:
        self._notify(self._on_connect_start)
        loop = asyncio.get_running_loop()
        started = loop.time()
        consecutive_errors = 0

        try:
            while True:
                if self._cancel.is_set():
                    raise _Cancelled()
                if self.deadline_seconds is not None and loop.time() - started > self.deadline_seconds:
                    self._fail(
                        "The sign-in took too long",
                        TimeoutError(f"no result after {self.deadline_seconds}s"),
                    )
                    return None

                self.poll_count += 1
                try:
                    result = await self._until_cancelled(self._api.poll_signin(signin_id))
                except _Cancelled:
                    raise
                except Exception as exc:
                    consecutive_errors += 1
                    self.suppressed_errors += 1
                    logger.warning(
                        "Poll auth error (%d in a row) for signin %s: %s",
                        consecutive_errors,
                        signin_id,
                        exc,
                    )
                    if (
                        self.max_consecutive_errors is not None
                        and consecutive_errors >= self.max_consecutive_errors
                    ):
                        self._fail("Lost contact with the sign-in service", exc)
                        return None
                    await self._pause(self._backoff(consecutive_errors))
                    continue

                consecutive_errors = 0
                logger.debug("Poll result for signin %s: %s", signin_id, result.get("status"))
                if result.get("status") == PollStatus.SUCCESS.value:
                    break
                await self._pause(self.poll_interval)
        except _Cancelled:
            self._abandon()
            return None

        try:
            records = transform_data(result, self._transform_config)
            if self._transform_config.dedupe_keys:
                records = filter_unique(records, self._transform_config.dedupe_keys)
        except Exception as exc:
            self._fail("Could not read the account data", exc)
            return None

        self.raw_result = result
        self.records = records
        self.state = SigninState.SUCCESS
        self._notify(self._on_auth_complete)
        self._notify(self._on_progress_step, COMPLETED_STEP)
        self._notify(self._on_success, records)
        return records

    async def _until_cancelled(self, aw: Awaitable[T]) -> T:
        """Await *aw* unless ``cancel()`` fires first."""
        work = asyncio.ensure_future(aw)
        stop = asyncio.ensure_future(self._cancel.wait())
        try:
            await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            stop.cancel()
        if not work.done():
            work.cancel()
            raise _Cancelled()
        return work.result()

    def _backoff(self, consecutive_errors: int) -> float:
        if self.error_backoff <= 0:
            return 0.0
        delay = self.error_backoff * 2 ** (consecutive_errors - 1)
        return min(delay, self.max_error_backoff)

    async def _pause(self, delay: float) -> None:
        """Sleep *delay* seconds, waking early on ``cancel()``."""
        if delay <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._cancel.wait(), delay)
        except asyncio.TimeoutError:
            pass

    # ── state transitions ───────────────────────────────────────────────

    def _fail(self, message: str, exc: BaseException) -> None:
        logger.error("Connection error: %s (%s)", message, exc)
        self.state = SigninState.ERROR
        self.error = message
        self.error_detail = str(exc) or type(exc).__name__
        self._notify(self._on_error, message, self.error_detail)

    def _abandon(self) -> None:
        logger.info("Sign-in %s abandoned", self.signin_id)
        self._cancel.clear()
        self.state = SigninState.IDLE

    def _notify(self, callback: Optional[Callable[..., None]], *args: Any) -> None:
        if callback is not None:
            callback(*args)
