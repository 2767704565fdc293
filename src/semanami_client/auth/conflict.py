from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from semanami_client.auth.gate import AuthFlowGate
from semanami_client.auth.state import AuthState, SessionConflictNotice
from semanami_client.auth.tokens import TokenStore
from semanami_client.errors import AuthError, ConflictError
from semanami_client.http import endpoints
from semanami_client.http.client import ApiClient, extract_access_token
from semanami_client.utils.log import logger


class ConflictState(str, Enum):
    none = "none"
    detected = "detected"
    resolved = "resolved"


def _login_payload(credentials: Mapping[str, Any], *, force: bool) -> dict[str, Any]:
    email = str(credentials.get("email") or "").strip()
    password = str(credentials.get("password") or "")
    payload: dict[str, Any] = {"email": email, "password": password}
    if force:
        payload["forceNewSession"] = True
    return payload


class SessionConflictNegotiator:
    """
    Credential login under the server's one-session-per-account policy.

    A login rejected with SESSION_CONFLICT raises ConflictError and leaves the
    TokenStore untouched; the UI then offers force_login() (invalidate the other
    session) or cancel_conflict().
    """

    def __init__(
        self,
        *,
        client: ApiClient,
        gate: AuthFlowGate,
        tokens: TokenStore,
        auth_state: AuthState | None = None,
    ) -> None:
        self._client = client
        self._gate = gate
        self._tokens = tokens
        self._auth_state = auth_state
        self.state = ConflictState.none
        self.last_conflict: ConflictError | None = None

    async def login(self, credentials: Mapping[str, Any]) -> dict[str, Any]:
        return await self._login(credentials, force=False)

    async def force_login(self, credentials: Mapping[str, Any]) -> dict[str, Any]:
        return await self._login(credentials, force=True)

    def cancel_conflict(self) -> None:
        if self.state is not ConflictState.none:
            logger.info("session_conflict_cancelled")
        self.state = ConflictState.none
        self.last_conflict = None
        if self._auth_state is not None:
            self._auth_state.set_conflict(None)

    async def _login(self, credentials: Mapping[str, Any], *, force: bool) -> dict[str, Any]:
        payload = _login_payload(credentials, force=force)
        operation = "force_login" if force else "login"
        was_detected = self.state is ConflictState.detected
        with self._gate.guard(operation):
            try:
                response = await self._client.request("POST", endpoints.AUTH_LOGIN, json=payload)
            except ConflictError as ex:
                self.state = ConflictState.detected
                self.last_conflict = ex
                logger.info("session_conflict_detected", forced=force, device=ex.current_device)
                if self._auth_state is not None:
                    self._auth_state.set_conflict(
                        SessionConflictNotice(
                            message=ex.server_message() or str(ex),
                            current_device=ex.current_device,
                        )
                    )
                raise
            except AuthError:
                # Rejected credentials end whatever session this client held.
                self._tokens.clear()
                if self._auth_state is not None:
                    self._auth_state.clear_user()
                raise
            token = extract_access_token(response)

        self._tokens.set(token)
        self.state = ConflictState.resolved if (force and was_detected) else ConflictState.none
        self.last_conflict = None
        if self._auth_state is not None:
            self._auth_state.set_conflict(None)
        logger.info("login_succeeded", forced=force)
        body = response.json()
        return body if isinstance(body, dict) else {}
