from __future__ import annotations

from collections.abc import Callable, MutableMapping

import httpx

# Values that older clients wrote into storage instead of removing the key.
_EMPTY_SENTINELS = frozenset({"", "null", "undefined"})

# Request extension marking calls that must go out without a bearer token.
ANONYMOUS = "semanami.anonymous"


def normalize_token(token: str | None) -> str | None:
    """Return the usable token, or None for absent/blank/"null"/"undefined"."""
    if token is None:
        return None
    t = str(token).strip()
    if t.lower() in _EMPTY_SENTINELS:
        return None
    return t


def bearer_value(token: str | None) -> str | None:
    t = normalize_token(token)
    return f"Bearer {t}" if t else None


def authorize(headers: MutableMapping[str, str], token: str | None) -> MutableMapping[str, str]:
    """
    Set or drop the Authorization header in place.

    Pure header mutation: no I/O, never blocks.
    """
    value = bearer_value(token)
    if value:
        headers["Authorization"] = value
    else:
        headers.pop("Authorization", None)
    return headers


class RequestAuthorizer:
    """
    Outgoing-request hook that injects `Authorization: Bearer <token>`.

    The token is read through `token_source` on every request, so a token swapped
    in by a refresh is picked up by the replayed request automatically.
    """

    def __init__(self, token_source: Callable[[], str | None]) -> None:
        self._token_source = token_source

    def __call__(self, request: httpx.Request) -> None:
        if request.extensions.get(ANONYMOUS):
            authorize(request.headers, None)
            return
        authorize(request.headers, self._token_source())

    async def hook(self, request: httpx.Request) -> None:
        # httpx.AsyncClient event hooks must be coroutines.
        self(request)
