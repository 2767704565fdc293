from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import suppress

from semanami_client.errors import (
    SESSION_CONFLICT_CODE,
    SESSION_UPGRADE_CODE,
    ApiError,
    AuthError,
)
from semanami_client.http import endpoints
from semanami_client.http.client import ApiClient
from semanami_client.utils.log import logger

_SESSION_LOST_CODES = frozenset({SESSION_CONFLICT_CODE, SESSION_UPGRADE_CODE})


class SessionHeartbeat:
    """
    Periodic `GET /auth/session-check` while signed in.

    A beat is only sent if the user was active since the previous one (touch()).
    A 401 carrying SESSION_CONFLICT / SESSION_UPGRADE_REQUIRED means another
    device took over the account; `on_session_lost` handles the local logout.
    """

    def __init__(
        self,
        *,
        client: ApiClient,
        on_session_lost: Callable[[AuthError], Awaitable[None]],
        is_signed_in: Callable[[], bool] | None = None,
        interval_s: float = 15.0,
    ) -> None:
        self._client = client
        self._on_session_lost = on_session_lost
        self._is_signed_in = is_signed_in
        self.interval_s = float(interval_s)
        self._active = True
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def touch(self) -> None:
        self._active = True

    async def beat(self) -> bool:
        if self._is_signed_in is not None and not self._is_signed_in():
            return False
        if not self._active:
            logger.debug("heartbeat_skipped_inactive")
            return False
        try:
            await self._client.request("GET", endpoints.AUTH_SESSION_CHECK)
        except AuthError as ex:
            if ex.code in _SESSION_LOST_CODES:
                logger.warning("heartbeat_session_lost", code=ex.code)
                await self._on_session_lost(ex)
                return True
            logger.info("heartbeat_auth_error", status=ex.status)
            return True
        except ApiError as ex:
            logger.info("heartbeat_failed", category=ex.category.value, status=ex.status)
            return True
        self._active = False
        return True

    def start(self) -> None:
        if self.running:
            return
        self._active = True
        self._task = asyncio.get_running_loop().create_task(self._loop(), name="auth.heartbeat")
        logger.info("heartbeat_started", interval_s=self.interval_s)

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        if task is asyncio.current_task():
            # Stopped from inside a beat (session lost); the loop exits on its own.
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        logger.info("heartbeat_stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            if self._is_signed_in is not None and not self._is_signed_in():
                logger.info("heartbeat_signed_out")
                self._task = None
                return
            await self.beat()
            if self._task is None or self._task is not asyncio.current_task():
                return
