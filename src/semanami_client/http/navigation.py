from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import suppress

from semanami_client.http.endpoints import is_auth_page
from semanami_client.utils.log import logger


class Navigator:
    """
    Location owned by the embedding UI.

    The resilience layer only reads the current path and schedules redirects;
    the UI reacts through `on_navigate`.
    """

    def __init__(
        self,
        *,
        path: str = "/",
        on_navigate: Callable[[str], None] | None = None,
    ) -> None:
        self.current_path = str(path or "/")
        self._on_navigate = on_navigate
        self._pending: asyncio.TimerHandle | None = None
        self.history: list[str] = []

    @property
    def on_auth_page(self) -> bool:
        return is_auth_page(self.current_path)

    @property
    def redirect_pending(self) -> bool:
        return self._pending is not None

    def navigate(self, path: str) -> None:
        self._pending = None
        self.current_path = str(path)
        self.history.append(self.current_path)
        logger.info("navigate", path=self.current_path)
        if self._on_navigate is not None:
            try:
                self._on_navigate(self.current_path)
            except Exception as ex:
                logger.warning("navigate_callback_failed", path=self.current_path, error=str(ex))

    def schedule_redirect(self, path: str, *, delay_s: float = 0.1) -> bool:
        """
        Redirect after `delay_s` unless one is already pending.

        Returns False when no event loop is running (nothing scheduled).
        """
        if self._pending is not None:
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return False
        self._pending = loop.call_later(max(0.0, float(delay_s)), self.navigate, str(path))
        logger.info("redirect_scheduled", path=str(path), delay_s=float(delay_s))
        return True

    def cancel_redirect(self) -> None:
        if self._pending is not None:
            with suppress(Exception):
                self._pending.cancel()
        self._pending = None
