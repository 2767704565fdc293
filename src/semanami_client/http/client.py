from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import structlog

from semanami_client.auth.gate import AuthFlowGate
from semanami_client.auth.tokens import TokenStore
from semanami_client.errors import AuthError, classify_response, network_error, response_payload
from semanami_client.http import endpoints
from semanami_client.http.authorizer import ANONYMOUS, RequestAuthorizer, authorize
from semanami_client.http.cookies import PersistentCookies
from semanami_client.http.navigation import Navigator
from semanami_client.http.refresh import RefreshCoordinator
from semanami_client.http.request import RequestDescriptor
from semanami_client.storage import ClientStorage
from semanami_client.utils.log import logger

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


class ApiClient:
    """
    httpx.AsyncClient wrapped in the request/response pipeline.

    request:  RequestAuthorizer hook injects the current bearer token.
    response: 2xx passes through; a 401 on a non-auth endpoint gets one
              refresh-and-replay (RefreshCoordinator); everything else is raised
              as an ApiError subclass. Auth-endpoint responses are never
              intercepted.

    With `storage` set, the cookie jar (refresh cookie) is restored at
    construction and saved after every response.
    """

    def __init__(
        self,
        *,
        base_url: str,
        tokens: TokenStore,
        gate: AuthFlowGate,
        navigator: Navigator,
        timeout_s: float = 60.0,
        refresh_timeout_s: float = 30.0,
        login_path: str = "/login",
        redirect_delay_s: float = 0.1,
        on_session_lost: Callable[[], None] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        storage: ClientStorage | None = None,
    ) -> None:
        self.base_url = str(base_url).rstrip("/")
        self._tokens = tokens
        self._refresh_timeout_s = float(refresh_timeout_s)
        self.authorizer = RequestAuthorizer(tokens.get)
        self._jar = PersistentCookies(storage) if storage is not None else None
        self._on_session_lost = on_session_lost
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=float(timeout_s),
            headers=DEFAULT_HEADERS,
            cookies=self._jar.load() if self._jar is not None else None,
            transport=transport,
            event_hooks={"request": [self.authorizer.hook], "response": [self._save_cookies]},
        )
        tokens.add_listener(self._sync_default_header)
        self._sync_default_header(tokens.get())
        self.refresher = RefreshCoordinator(
            tokens=tokens,
            gate=gate,
            navigator=navigator,
            perform_refresh=self._refresh_call,
            on_session_lost=self._session_lost,
            login_path=login_path,
            redirect_delay_s=redirect_delay_s,
        )

    @property
    def default_headers(self) -> httpx.Headers:
        return self._http.headers

    @property
    def cookies(self) -> httpx.Cookies:
        return self._http.cookies

    def _sync_default_header(self, token: str | None) -> None:
        authorize(self._http.headers, token)

    async def _save_cookies(self, response: httpx.Response) -> None:
        if self._jar is not None:
            self._jar.save(self._http.cookies)

    def clear_cookies(self) -> None:
        self._http.cookies.clear()
        if self._jar is not None:
            self._jar.clear()

    def _session_lost(self) -> None:
        # The refresh cookie was rejected too; a restart must not retry it.
        self.clear_cookies()
        if self._on_session_lost is not None:
            self._on_session_lost()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def _send_once(self, d: RequestDescriptor) -> httpx.Response:
        d.sent_token = self._tokens.get()
        kwargs: dict[str, Any] = {"json": d.json, "params": d.params}
        if d.headers:
            kwargs["headers"] = d.headers
        if d.timeout is not None:
            kwargs["timeout"] = float(d.timeout)
        if d.anonymous:
            kwargs["extensions"] = {ANONYMOUS: True}
        try:
            response = await self._http.request(d.method.upper(), d.path, **kwargs)
        except httpx.TransportError as ex:
            logger.warning("request_network_error", request=d.label(), error=type(ex).__name__)
            raise network_error(ex, url=d.path) from ex
        logger.debug("response", request=d.label(), status=response.status_code)
        return response

    async def send(self, d: RequestDescriptor) -> httpx.Response:
        with structlog.contextvars.bound_contextvars(request=d.label()):
            return await self._send(d)

    async def _send(self, d: RequestDescriptor) -> httpx.Response:
        response = await self._send_once(d)
        if response.is_success:
            return response

        if self.refresher.should_attempt(d, response.status_code):
            d.retried = True
            current = self._tokens.get()
            if current is not None and current != d.sent_token:
                # A refresh finished while this request was on the wire.
                logger.info("replay_with_current_token")
            else:
                await self.refresher.refresh()
            logger.info("request_replayed")
            response = await self._send_once(d)
            if response.is_success:
                return response

        err = classify_response(response)
        if not d.is_auth:
            logger.info("request_failed", status=response.status_code)
        raise err

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        d = RequestDescriptor(
            method=method,
            path=path,
            json=json,
            params=params,
            headers=dict(headers or {}),
            timeout=timeout,
        )
        return await self.send(d)

    async def request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self.request(method, path, **kwargs)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def head(self, url: str, *, timeout: float) -> httpx.Response:
        """Unauthenticated-pipeline HEAD (health probes); transport errors propagate."""
        return await self._http.head(url, timeout=float(timeout))

    async def _refresh_call(self) -> str:
        # Only the refresh cookie authenticates this call; the bearer token is stale.
        d = RequestDescriptor(
            method="POST",
            path=endpoints.AUTH_REFRESH,
            json={},
            timeout=self._refresh_timeout_s,
            anonymous=True,
        )
        response = await self._send_once(d)
        if not response.is_success:
            raise classify_response(response)
        return extract_access_token(response)


def extract_access_token(response: httpx.Response) -> str:
    """
    Access token from a login/refresh body.

    `access_token` is the documented field; `token` is what the server
    controllers actually send.
    """
    data = response_payload(response)
    for key in ("access_token", "token"):
        v = data.get(key)
        if isinstance(v, str) and v.strip() and v.strip().lower() not in {"null", "undefined"}:
            return v.strip()
    raise AuthError(
        "No access token in response",
        status=response.status_code,
        payload=data,
        url=str(response.request.url),
    )
