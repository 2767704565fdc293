from __future__ import annotations

import json
from http.cookiejar import Cookie
from typing import Any

import httpx

from semanami_client.storage import ClientStorage
from semanami_client.utils.log import logger

COOKIES_KEY = "cookies"

_FIELDS = (
    "version",
    "name",
    "value",
    "port",
    "port_specified",
    "domain",
    "domain_specified",
    "domain_initial_dot",
    "path",
    "path_specified",
    "secure",
    "expires",
    "discard",
    "comment",
    "comment_url",
    "rfc2109",
)


def _dump_cookie(c: Cookie) -> dict[str, Any]:
    out = {k: getattr(c, k) for k in _FIELDS}
    out["rest"] = dict(getattr(c, "_rest", {}) or {})
    return out


def _load_cookie(raw: dict[str, Any]) -> Cookie:
    kwargs = {k: raw.get(k) for k in _FIELDS}
    kwargs["rest"] = dict(raw.get("rest") or {})
    kwargs["rfc2109"] = bool(kwargs["rfc2109"])
    return Cookie(**kwargs)


class PersistentCookies:
    """
    Keeps the HTTP client's cookie jar (the HttpOnly refresh cookie) in
    ClientStorage, the way a browser keeps its jar across restarts.

    `response_hook` runs after httpx has extracted Set-Cookie headers, so the
    jar is already current; storage is only written when its contents change.
    """

    def __init__(self, storage: ClientStorage) -> None:
        self._storage = storage
        self._saved: str | None = None

    def load(self) -> httpx.Cookies:
        cookies = httpx.Cookies()
        raw = self._storage.get(COOKIES_KEY)
        if not raw:
            return cookies
        try:
            items = json.loads(raw)
        except ValueError:
            logger.warning("cookie_state_unreadable")
            self._storage.delete(COOKIES_KEY)
            return cookies
        for item in items if isinstance(items, list) else []:
            try:
                c = _load_cookie(item)
            except (TypeError, AttributeError) as ex:
                logger.warning("cookie_skipped", error=str(ex))
                continue
            if not c.is_expired():
                cookies.jar.set_cookie(c)
        self._saved = raw
        return cookies

    def save(self, cookies: httpx.Cookies) -> None:
        live = [_dump_cookie(c) for c in cookies.jar if not c.is_expired()]
        if not live:
            if self._saved is not None:
                self.clear()
            return
        raw = json.dumps(live, sort_keys=True)
        if raw == self._saved:
            return
        self._storage.set(COOKIES_KEY, raw)
        self._saved = raw

    def clear(self) -> None:
        self._storage.delete(COOKIES_KEY)
        self._saved = None
