from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum

from semanami_client.auth.gate import AuthFlowGate
from semanami_client.auth.tokens import TokenStore
from semanami_client.http.navigation import Navigator
from semanami_client.http.request import RequestDescriptor
from semanami_client.utils.log import logger


class RefreshPhase(str, Enum):
    idle = "idle"
    refreshing = "refreshing"
    failed = "failed"


class RefreshCoordinator:
    """
    Refresh-on-401 recovery for non-auth requests.

    - at most one refresh-and-replay per request (descriptor.retried)
    - single-flight: concurrent callers await one shared in-flight refresh
    - never active while an explicit auth flow holds the gate
    - a failed refresh clears the session and schedules a login redirect,
      unless an auth flow is in control or the UI is already on an auth page
    """

    def __init__(
        self,
        *,
        tokens: TokenStore,
        gate: AuthFlowGate,
        navigator: Navigator,
        perform_refresh: Callable[[], Awaitable[str]],
        on_session_lost: Callable[[], None] | None = None,
        login_path: str = "/login",
        redirect_delay_s: float = 0.1,
    ) -> None:
        self._tokens = tokens
        self._gate = gate
        self._navigator = navigator
        self._perform_refresh = perform_refresh
        self._on_session_lost = on_session_lost
        self._login_path = str(login_path)
        self._redirect_delay_s = float(redirect_delay_s)
        self._inflight: asyncio.Task[str] | None = None
        self.phase = RefreshPhase.idle
        self.refresh_calls = 0

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None

    def should_attempt(self, descriptor: RequestDescriptor, status: int | None) -> bool:
        if status != 401:
            return False
        if descriptor.is_auth:
            return False
        if descriptor.retried:
            return False
        if self._gate.active:
            logger.info("refresh_skipped_auth_flow", request=descriptor.label())
            return False
        return True

    async def refresh(self) -> str:
        """
        Return a fresh access token, joining any refresh already in flight.

        The shared task is shielded: a cancelled waiter does not cancel the
        refresh the other waiters depend on.
        """
        task = self._inflight
        if task is None:
            task = asyncio.get_running_loop().create_task(self._run(), name="auth.refresh")
            self._inflight = task
            task.add_done_callback(self._clear_inflight)
        else:
            logger.debug("refresh_joined")
        return await asyncio.shield(task)

    def _clear_inflight(self, task: asyncio.Task[str]) -> None:
        if self._inflight is task:
            self._inflight = None
        # Retrieve so an unobserved failure is not reported as "never retrieved".
        if not task.cancelled():
            task.exception()

    async def _run(self) -> str:
        self.phase = RefreshPhase.refreshing
        self.refresh_calls += 1
        logger.info("refresh_started", attempt=self.refresh_calls)
        try:
            token = await self._perform_refresh()
        except Exception as ex:
            self.phase = RefreshPhase.failed
            self._handle_failure(ex)
            raise
        self._tokens.set(token)
        self.phase = RefreshPhase.idle
        logger.info("refresh_succeeded")
        return token

    def _handle_failure(self, ex: Exception) -> None:
        if self._gate.active:
            # An explicit auth flow owns the session right now.
            logger.warning("refresh_failed_during_auth_flow", error=str(ex))
            return
        logger.warning("refresh_failed_session_cleared", error=str(ex))
        self._tokens.clear()
        if self._on_session_lost is not None:
            try:
                self._on_session_lost()
            except Exception as cb_ex:
                logger.warning("session_lost_callback_failed", error=str(cb_ex))
        if self._navigator.on_auth_page:
            return
        self._navigator.schedule_redirect(self._login_path, delay_s=self._redirect_delay_s)
