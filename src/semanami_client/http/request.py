from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from semanami_client.http.endpoints import is_auth_endpoint


@dataclass(slots=True)
class RequestDescriptor:
    """
    One logical API call.

    `retried` is the per-request retry marker: once a refresh-and-replay cycle
    has run for this descriptor it is never replayed again. `sent_token` records
    the token the last attempt carried. `anonymous` sends the call without
    any Authorization header.
    """

    method: str
    path: str
    json: Any = None
    params: dict[str, Any] | None = None
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None
    retried: bool = False
    sent_token: str | None = None
    anonymous: bool = False

    @property
    def is_auth(self) -> bool:
        return is_auth_endpoint(self.path)

    def label(self) -> str:
        return f"{self.method.upper()} {self.path}"
