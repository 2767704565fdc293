from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

SESSION_CONFLICT_CODE = "SESSION_CONFLICT"
SESSION_UPGRADE_CODE = "SESSION_UPGRADE_REQUIRED"


class ErrorCategory(str, Enum):
    network = "network"
    auth = "auth"
    permission = "permission"
    validation = "validation"
    rate_limit = "rate_limit"
    server = "server"
    conflict = "conflict"
    client = "client"
    unknown = "unknown"


_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.network: "Unable to connect. Please check your internet connection and try again.",
    ErrorCategory.auth: "Authentication failed. Please log in again.",
    ErrorCategory.permission: "You don't have permission to perform this action.",
    ErrorCategory.validation: "Please check your input and try again.",
    ErrorCategory.rate_limit: "Too many requests. Please wait a moment and try again.",
    ErrorCategory.server: "Server error. Please try again in a moment.",
    ErrorCategory.conflict: "Already logged in elsewhere. Only one active session allowed.",
    ErrorCategory.client: "Something went wrong. Please try again.",
    ErrorCategory.unknown: "An unexpected error occurred.",
}


class ApiError(RuntimeError):
    category = ErrorCategory.unknown

    def __init__(
        self,
        message: str = "",
        *,
        status: int | None = None,
        payload: dict[str, Any] | None = None,
        url: str = "",
    ) -> None:
        super().__init__(message or _MESSAGES[self.category])
        self.status = status
        self.payload: dict[str, Any] = dict(payload or {})
        self.url = str(url or "")

    @property
    def code(self) -> str:
        return str(self.payload.get("code") or "")

    def server_message(self) -> str:
        for key in ("message", "detail", "error"):
            v = self.payload.get(key)
            if isinstance(v, str) and v.strip():
                return v.strip()
        return ""


class NetworkError(ApiError):
    """No response was received (connect failure, timeout, DNS)."""

    category = ErrorCategory.network


class AuthError(ApiError):
    category = ErrorCategory.auth


class ConflictError(AuthError):
    """Login rejected because the account has an active session elsewhere."""

    category = ErrorCategory.conflict

    @property
    def current_device(self) -> str:
        return str(self.payload.get("currentDevice") or "")


class ForbiddenError(ApiError):
    category = ErrorCategory.permission


class ValidationError(ApiError):
    category = ErrorCategory.validation


class RateLimitError(ApiError):
    category = ErrorCategory.rate_limit

    def __init__(self, message: str = "", *, retry_after: float | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ServerError(ApiError):
    category = ErrorCategory.server


class ClientError(ApiError):
    category = ErrorCategory.client


def response_payload(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        text = response.text.strip()
        return {"detail": text} if text else {}
    if isinstance(data, dict):
        return data
    return {"data": data}


def _retry_after(response: httpx.Response) -> float | None:
    raw = response.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


def classify_response(response: httpx.Response) -> ApiError:
    """
    Map a non-2xx response onto the error taxonomy.
    """
    status = int(response.status_code)
    payload = response_payload(response)
    url = str(response.request.url) if response.request is not None else ""
    kw: dict[str, Any] = {"status": status, "payload": payload, "url": url}
    msg = ""
    for key in ("message", "detail", "error"):
        v = payload.get(key)
        if isinstance(v, str) and v.strip():
            msg = v.strip()
            break

    if status == 401:
        if str(payload.get("code") or "") == SESSION_CONFLICT_CODE:
            return ConflictError(msg, **kw)
        return AuthError(msg, **kw)
    if status == 403:
        return ForbiddenError(msg, **kw)
    if status == 422:
        return ValidationError(msg, **kw)
    if status == 429:
        return RateLimitError(msg, retry_after=_retry_after(response), **kw)
    if status >= 500:
        return ServerError(msg, **kw)
    return ClientError(msg, **kw)


def network_error(ex: httpx.HTTPError, *, url: str = "") -> NetworkError:
    kind = "timeout" if isinstance(ex, httpx.TimeoutException) else type(ex).__name__
    return NetworkError(f"{_MESSAGES[ErrorCategory.network]} ({kind})", url=url)


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    category: ErrorCategory
    message: str
    status: int | None = None


def describe_error(ex: BaseException) -> ErrorInfo:
    """
    Short, categorized, user-facing description of a failure.

    Never includes tracebacks; server-provided text is only used where the
    server speaks to the user directly (validation, conflict, generic 4xx).
    """
    if not isinstance(ex, ApiError):
        return ErrorInfo(ErrorCategory.unknown, _MESSAGES[ErrorCategory.unknown])
    cat = ex.category
    msg = _MESSAGES[cat]
    if cat in {ErrorCategory.validation, ErrorCategory.conflict, ErrorCategory.client}:
        msg = ex.server_message() or msg
    return ErrorInfo(cat, msg, ex.status)
