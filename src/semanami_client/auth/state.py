from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Mapping

from semanami_client.utils.log import logger


@dataclass(frozen=True, slots=True)
class SessionConflictNotice:
    message: str
    current_device: str = ""


@dataclass(frozen=True, slots=True)
class AuthSnapshot:
    is_auth_ready: bool = False
    user: Mapping[str, Any] | None = None
    loading_user: bool = True
    session_conflict: SessionConflictNotice | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


Subscriber = Callable[[AuthSnapshot], None]


class AuthState:
    """
    Externally observable auth state.

    UI collaborators subscribe and render a neutral loading state until
    `is_auth_ready` is true; protected views need `is_authenticated`.
    """

    def __init__(self) -> None:
        self._snap = AuthSnapshot()
        self._subs: list[Subscriber] = []
        self._ready = asyncio.Event()

    # --- read side ---
    @property
    def snapshot(self) -> AuthSnapshot:
        return self._snap

    @property
    def is_auth_ready(self) -> bool:
        return self._snap.is_auth_ready

    @property
    def is_authenticated(self) -> bool:
        return self._snap.is_authenticated

    @property
    def user(self) -> Mapping[str, Any] | None:
        return self._snap.user

    @property
    def loading_user(self) -> bool:
        return self._snap.loading_user

    @property
    def session_conflict(self) -> SessionConflictNotice | None:
        return self._snap.session_conflict

    def subscribe(self, cb: Subscriber) -> Callable[[], None]:
        self._subs.append(cb)

        def _unsubscribe() -> None:
            if cb in self._subs:
                self._subs.remove(cb)

        return _unsubscribe

    async def wait_ready(self) -> AuthSnapshot:
        await self._ready.wait()
        return self._snap

    # --- write side (owned by AuthResilienceService) ---
    def _update(self, **changes: Any) -> None:
        new = replace(self._snap, **changes)
        if new == self._snap:
            return
        self._snap = new
        if new.is_auth_ready:
            self._ready.set()
        for cb in list(self._subs):
            try:
                cb(new)
            except Exception as ex:
                logger.warning("auth_state_subscriber_failed", error=str(ex))

    def set_user(self, user: Mapping[str, Any] | None) -> None:
        frozen = MappingProxyType(dict(user)) if user is not None else None
        self._update(user=frozen)

    def clear_user(self) -> None:
        self._update(user=None)

    def set_loading(self, loading: bool) -> None:
        self._update(loading_user=bool(loading))

    def mark_ready(self) -> None:
        self._update(is_auth_ready=True, loading_user=False)

    def set_conflict(self, notice: SessionConflictNotice | None) -> None:
        self._update(session_conflict=notice)
