from __future__ import annotations

from collections.abc import Callable

from semanami_client.http.authorizer import normalize_token
from semanami_client.storage import ClientStorage
from semanami_client.utils.log import logger

ACCESS_TOKEN_KEY = "access_token"
# Keys written by earlier client versions; read as fallbacks, always cleared.
LEGACY_TOKEN_KEYS = ("token", "accessToken")

TokenListener = Callable[[str | None], None]


def _load_token(storage: ClientStorage) -> str | None:
    for key in (ACCESS_TOKEN_KEY, *LEGACY_TOKEN_KEYS):
        tok = normalize_token(storage.get(key))
        if tok:
            return tok
    return None


class TokenStore:
    """
    Owner of the current access token.

    Storage is read once at construction; afterwards `get()` is a plain
    attribute read (it runs inside the request hook) and `set`/`clear` write
    through. Simple overwrite semantics (last write wins); no network side
    effects. Listeners are told about every set/clear so the HTTP client can
    keep its default Authorization header in step.
    """

    def __init__(self, storage: ClientStorage) -> None:
        self._storage = storage
        self._listeners: list[TokenListener] = []
        self._token = _load_token(storage)

    def add_listener(self, cb: TokenListener) -> None:
        self._listeners.append(cb)

    def _notify(self, token: str | None) -> None:
        for cb in list(self._listeners):
            try:
                cb(token)
            except Exception as ex:
                logger.warning("token_listener_failed", error=str(ex))

    def get(self) -> str | None:
        return self._token

    def set(self, token: str | None) -> None:
        tok = normalize_token(token)
        if tok is None:
            # Storing a sentinel would only resurrect the "null" token bug.
            self.clear()
            return
        self._token = tok
        self._storage.set(ACCESS_TOKEN_KEY, tok)
        self._notify(tok)

    def clear(self) -> None:
        self._token = None
        self._storage.delete(ACCESS_TOKEN_KEY)
        for key in LEGACY_TOKEN_KEYS:
            self._storage.delete(key)
        self._notify(None)

    @property
    def present(self) -> bool:
        return self._token is not None
