from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx

from semanami_client.http.navigation import Navigator
from semanami_client.service import AuthResilienceService
from semanami_client.storage import ClientStorage, MemoryStorage

USER = {"id": "u1", "email": "learner@example.com", "name": "Learner"}
PASSWORD = "correct-horse"


def _json(status: int, data: Any, *, cookie: str | None = None) -> httpx.Response:
    headers = {"Set-Cookie": cookie} if cookie is not None else None
    return httpx.Response(status, json=data, headers=headers)


def _request_cookies(request: httpx.Request) -> dict[str, str]:
    out: dict[str, str] = {}
    for part in (request.headers.get("Cookie") or "").split(";"):
        name, sep, value = part.strip().partition("=")
        if sep:
            out[name] = value
    return out


class FakeApi:
    """
    In-memory stand-in for the SemaNami API, served through httpx.MockTransport.

    Only `current_token` is accepted as a bearer token. Each successful refresh
    or login issues the next token in sequence (tok-1, tok-2, ...) together
    with a matching HttpOnly `refresh_token` cookie (r-1, r-2, ...). With
    `require_refresh_cookie` set, a refresh only succeeds when that cookie
    comes back.
    """

    def __init__(self, *, current_token: str | None = "tok-0", refresh_ok: bool = True) -> None:
        self.current_token = current_token
        self.refresh_ok = refresh_ok
        self.refresh_delay_s = 0.01
        self.refresh_field = "access_token"
        self.other_device_active = False
        self.session_taken_over = False
        self.me_status = 200
        self.offline = False
        self.fail_paths: dict[str, int] = {}
        self.refresh_cookie: str | None = None
        self.require_refresh_cookie = False
        self.refresh_cookies_seen: list[str | None] = []
        self.calls: list[tuple[str, str, str | None]] = []
        self.bodies: list[tuple[str, Any]] = []
        self._issued = 0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def count(self, method: str, path: str) -> int:
        return sum(1 for m, p, _ in self.calls if m == method and p == path)

    def _issue(self) -> str:
        self._issued += 1
        self.current_token = f"tok-{self._issued}"
        self.refresh_cookie = f"r-{self._issued}"
        return self.current_token

    def _cookie_header(self) -> str:
        return f"refresh_token={self.refresh_cookie}; HttpOnly; Path=/"

    def _authorized(self, request: httpx.Request) -> bool:
        header = request.headers.get("Authorization") or ""
        return bool(self.current_token) and header == f"Bearer {self.current_token}"

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith("/api/"):
            path = path[len("/api") :]
        method = request.method
        self.calls.append((method, path, request.headers.get("Authorization")))
        body: Any = None
        if request.content:
            body = json.loads(request.content)
        self.bodies.append((path, body))

        if self.offline:
            raise httpx.ConnectError("offline", request=request)
        if path in self.fail_paths:
            return _json(self.fail_paths[path], {"message": "boom"})

        if path == "/auth/login" and method == "POST":
            if body.get("email") != USER["email"] or body.get("password") != PASSWORD:
                return _json(401, {"message": "Invalid credentials"})
            if self.other_device_active and not body.get("forceNewSession"):
                return _json(
                    401,
                    {
                        "code": "SESSION_CONFLICT",
                        "message": "Already logged in elsewhere. Only one active session allowed.",
                        "currentDevice": "Chrome on Mac",
                    },
                )
            self.other_device_active = False
            token = self._issue()
            return _json(200, {"token": token, "user": USER}, cookie=self._cookie_header())

        if path == "/auth/refresh" and method == "POST":
            await asyncio.sleep(self.refresh_delay_s)
            sent = _request_cookies(request).get("refresh_token")
            self.refresh_cookies_seen.append(sent)
            if not self.refresh_ok:
                return _json(401, {"message": "Invalid refresh token"})
            if self.require_refresh_cookie and (sent is None or sent != self.refresh_cookie):
                return _json(401, {"message": "Refresh token missing"})
            token = self._issue()
            return _json(200, {self.refresh_field: token}, cookie=self._cookie_header())

        if path == "/auth/logout" and method == "POST":
            self.current_token = None
            self.refresh_cookie = None
            return _json(200, {"message": "Logged out"}, cookie="refresh_token=; Max-Age=0; Path=/")

        if path == "/auth/me" and method == "GET":
            if not self._authorized(request):
                return _json(401, {"message": "Unauthorized"})
            if self.me_status != 200:
                return _json(self.me_status, {"message": "profile unavailable"})
            return _json(200, {"user": USER})

        if path == "/auth/session-check" and method == "GET":
            if self.session_taken_over:
                return _json(401, {"code": "SESSION_CONFLICT", "message": "Session ended"})
            if not self._authorized(request):
                return _json(401, {"message": "Unauthorized"})
            return _json(200, {"valid": True})

        if path in {"/auth/register", "/auth/forgot-password", "/auth/reset-password"}:
            return _json(200, {"message": "ok"})

        if path == "/health" and method in {"GET", "HEAD"}:
            return _json(200, {"status": "ok"})

        # Everything else is a protected resource.
        if not self._authorized(request):
            return _json(401, {"message": "Token expired"})
        if path == "/chats" and method == "GET":
            return _json(200, [{"id": "c1", "title": "Greetings"}])
        if path == "/chats" and method == "POST":
            return _json(201, {"id": "c2", **(body or {})})
        if path.startswith("/chats/") and path.endswith("/messages"):
            return _json(201, {"id": f"m{len(self.calls)}", **(body or {})})
        if path.startswith("/chats/"):
            return _json(200, {"id": path.rsplit("/", 1)[-1], "messages": []})
        if path.startswith("/learning-progress/"):
            return _json(200, {"session": path.rsplit("/", 1)[-1], "params": dict(request.url.params)})
        if path == "/usage-summary":
            return _json(200, {"minutes": 12})
        return _json(404, {"message": "not found"})


def make_service(
    api: FakeApi,
    *,
    token: str | None = None,
    path: str = "/dashboard",
    storage: ClientStorage | None = None,
    online: bool = True,
) -> AuthResilienceService:
    store = storage if storage is not None else MemoryStorage()
    if token is not None:
        store.set("access_token", token)
    return AuthResilienceService(
        storage=store,
        navigator=Navigator(path=path),
        transport=api.transport,
        online=online,
        heartbeat=False,
    )
