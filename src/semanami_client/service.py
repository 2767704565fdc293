from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import httpx

from semanami_client.auth.conflict import SessionConflictNegotiator
from semanami_client.auth.gate import AuthFlowGate
from semanami_client.auth.heartbeat import SessionHeartbeat
from semanami_client.auth.state import AuthSnapshot, AuthState, SessionConflictNotice
from semanami_client.auth.tokens import TokenStore
from semanami_client.config import Settings, get_settings
from semanami_client.errors import ApiError, AuthError
from semanami_client.http import endpoints
from semanami_client.http.client import ApiClient
from semanami_client.http.navigation import Navigator
from semanami_client.offline.connectivity import ConnectionMonitor, ConnectionStatus
from semanami_client.offline.queue import DrainReport, OfflineQueue, Operation
from semanami_client.storage import ClientStorage, SqliteStorage
from semanami_client.utils.log import logger

SESSION_TAKEN_OVER_MESSAGE = "You have been logged out because you logged in elsewhere."


def _user_from(body: Any) -> dict[str, Any] | None:
    """`/auth/me` answers either the user object or `{"user": {...}}`."""
    if not isinstance(body, dict):
        return None
    inner = body.get("user")
    if isinstance(inner, dict):
        return inner
    return body or None


class AuthResilienceService:
    """
    Composition root for the auth & resilience layer.

    One instance per signed-in profile: it owns the TokenStore, AuthFlowGate,
    ApiClient (with its RefreshCoordinator), SessionConflictNegotiator,
    AuthState, OfflineQueue, ConnectionMonitor and SessionHeartbeat, and is the
    only writer of AuthState.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        storage: ClientStorage | None = None,
        navigator: Navigator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        online: bool = True,
        heartbeat: bool = True,
    ) -> None:
        s = settings or get_settings()
        self.settings = s
        self.storage: ClientStorage = storage or SqliteStorage(s.public.storage_path())
        self.navigator = navigator or Navigator()
        self.tokens = TokenStore(self.storage)
        self.gate = AuthFlowGate(self.storage)
        self.auth_state = AuthState()
        self.client = ApiClient(
            base_url=s.api_base_url(),
            tokens=self.tokens,
            gate=self.gate,
            navigator=self.navigator,
            timeout_s=s.public.request_timeout_sec,
            refresh_timeout_s=s.public.refresh_timeout_sec,
            login_path=s.public.login_path,
            redirect_delay_s=s.public.login_redirect_delay_sec,
            on_session_lost=self.auth_state.clear_user,
            transport=transport,
            storage=self.storage,
        )
        self.conflicts = SessionConflictNegotiator(
            client=self.client,
            gate=self.gate,
            tokens=self.tokens,
            auth_state=self.auth_state,
        )
        self.queue = OfflineQueue(online=online)
        self.connection = ConnectionMonitor(
            client=self.client,
            queue=self.queue,
            timeout_s=s.public.health_probe_timeout_sec,
        )
        self._heartbeat_enabled = bool(heartbeat) and float(s.public.heartbeat_interval_sec) > 0
        self.heartbeat = SessionHeartbeat(
            client=self.client,
            on_session_lost=self._heartbeat_session_lost,
            is_signed_in=lambda: self.auth_state.is_authenticated,
            interval_s=s.public.heartbeat_interval_sec,
        )

    async def __aenter__(self) -> AuthResilienceService:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.heartbeat.stop()
        await self.connection.stop()
        self.navigator.cancel_redirect()
        await self.client.aclose()

    # --- startup ---
    async def initialize(self) -> AuthSnapshot:
        """
        Resolve the startup auth state.

        Persisted token: fetch the user with it. No token: one silent refresh
        (the refresh cookie may still be valid), then fetch the user.
        `is_auth_ready` becomes true whichever way this ends.
        """
        self.auth_state.set_loading(True)
        try:
            if self.tokens.present:
                try:
                    await self.fetch_me()
                except AuthError:
                    # Stored token expired; the refresh cookie may outlive it.
                    if await self._silent_refresh():
                        await self._fetch_me_quietly()
                except ApiError as ex:
                    logger.warning("startup_profile_failed", category=ex.category.value, status=ex.status)
            elif await self._silent_refresh():
                await self._fetch_me_quietly()
        finally:
            self.auth_state.mark_ready()
        logger.info("auth_ready", authenticated=self.auth_state.is_authenticated)
        if self.auth_state.is_authenticated:
            self._start_heartbeat()
        return self.auth_state.snapshot

    async def _silent_refresh(self) -> bool:
        try:
            with self.gate.guard("silent_refresh"):
                await self.client.refresher.refresh()
        except ApiError as ex:
            logger.info("silent_refresh_unavailable", category=ex.category.value, status=ex.status)
            self.tokens.clear()
            if isinstance(ex, AuthError):
                self.client.clear_cookies()
            return False
        return True

    async def _fetch_me_quietly(self) -> None:
        try:
            await self.fetch_me()
        except ApiError as ex:
            logger.warning("startup_profile_failed", category=ex.category.value, status=ex.status)

    async def fetch_me(self) -> dict[str, Any] | None:
        self.auth_state.set_loading(True)
        try:
            body = await self.client.request_json("GET", endpoints.AUTH_ME)
        finally:
            self.auth_state.set_loading(False)
        user = _user_from(body)
        self.auth_state.set_user(user)
        return user

    # --- explicit auth flows ---
    async def login(self, credentials: Mapping[str, Any]) -> AuthSnapshot:
        body = await self.conflicts.login(credentials)
        return await self._complete_login(body)

    async def force_login(self, credentials: Mapping[str, Any]) -> AuthSnapshot:
        body = await self.conflicts.force_login(credentials)
        return await self._complete_login(body)

    def cancel_conflict(self) -> None:
        self.conflicts.cancel_conflict()

    async def _complete_login(self, body: Mapping[str, Any]) -> AuthSnapshot:
        try:
            await self.fetch_me()
        except ApiError as ex:
            logger.warning("login_profile_failed", category=ex.category.value, status=ex.status)
            fallback = body.get("user")
            self.auth_state.set_user(fallback if isinstance(fallback, dict) else None)
        self.auth_state.mark_ready()
        if self.auth_state.is_authenticated:
            self._start_heartbeat()
        return self.auth_state.snapshot

    async def register(self, data: Mapping[str, Any]) -> Any:
        payload = {
            "email": str(data.get("email") or "").strip(),
            "password": str(data.get("password") or ""),
            "name": str(data.get("name") or "").strip(),
        }
        with self.gate.guard("register"):
            body = await self.client.request_json("POST", endpoints.AUTH_REGISTER, json=payload)
        logger.info("register_succeeded")
        return body

    async def forgot_password(self, email: str) -> Any:
        with self.gate.guard("forgot_password"):
            return await self.client.request_json(
                "POST", endpoints.AUTH_FORGOT_PASSWORD, json={"email": str(email).strip()}
            )

    async def reset_password(self, token: str, new_password: str) -> Any:
        with self.gate.guard("reset_password"):
            return await self.client.request_json(
                "POST",
                endpoints.AUTH_RESET_PASSWORD,
                json={"token": str(token), "new_password": str(new_password)},
            )

    async def refresh(self) -> str:
        """
        Explicit token refresh.

        Joins any in-flight refresh; a failure here is reported to the caller
        without clearing the session or redirecting.
        """
        with self.gate.guard("refresh"):
            return await self.client.refresher.refresh()

    async def logout(self) -> None:
        await self.heartbeat.stop()
        try:
            with self.gate.guard("logout"):
                await self.client.request("POST", endpoints.AUTH_LOGOUT, json={})
        except ApiError as ex:
            # Server-side revocation is best effort; the local session ends regardless.
            logger.warning("logout_server_failed", category=ex.category.value, status=ex.status)
        finally:
            self._clear_session()
            self.navigator.cancel_redirect()
            self.navigator.navigate(self.settings.public.login_path)
        logger.info("logout_completed")

    def _clear_session(self) -> None:
        self.tokens.clear()
        self.client.clear_cookies()
        self.auth_state.clear_user()

    async def _heartbeat_session_lost(self, ex: AuthError) -> None:
        self.auth_state.set_conflict(
            SessionConflictNotice(message=SESSION_TAKEN_OVER_MESSAGE, current_device="")
        )
        self._clear_session()
        await self.heartbeat.stop()
        if not self.navigator.on_auth_page:
            self.navigator.schedule_redirect(
                self.settings.public.login_path,
                delay_s=self.settings.public.login_redirect_delay_sec,
            )
        logger.info("session_taken_over", code=ex.code)

    def _start_heartbeat(self) -> None:
        if not self._heartbeat_enabled:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self.heartbeat.start()

    # --- authenticated traffic ---
    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        self.heartbeat.touch()
        return await self.client.request(method, path, **kwargs)

    async def request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        self.heartbeat.touch()
        return await self.client.request_json(method, path, **kwargs)

    # --- offline support ---
    async def queue_or_run(self, op: Operation, *, label: str = "") -> Any:
        return await self.queue.queue_or_run(op, label=label)

    def set_online(self, online: bool) -> asyncio.Task[DrainReport] | None:
        if online:
            return self.connection.mark_online()
        self.connection.mark_offline()
        return None

    def connection_status(self) -> ConnectionStatus:
        return self.connection.status()
