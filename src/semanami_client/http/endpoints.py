from __future__ import annotations

from urllib.parse import urlsplit

AUTH_LOGIN = "/auth/login"
AUTH_REGISTER = "/auth/register"
AUTH_REFRESH = "/auth/refresh"
AUTH_LOGOUT = "/auth/logout"
AUTH_FORGOT_PASSWORD = "/auth/forgot-password"
AUTH_RESET_PASSWORD = "/auth/reset-password"
AUTH_ME = "/auth/me"
AUTH_SESSION_CHECK = "/auth/session-check"

CHATS = "/chats"
LEARNING_PROGRESS = "/learning-progress"
USAGE_SUMMARY = "/usage-summary"
HEALTH = "/health"

# Client-side routes that already show an auth form; no login redirect from these.
AUTH_PAGES = ("/login", "/signup", "/register")


def is_auth_endpoint(url: str) -> bool:
    """
    True for any request aimed at the auth API (login, refresh, logout, ...).

    Matches on the path so both relative paths and absolute URLs work.
    """
    path = urlsplit(str(url or "")).path or str(url or "")
    return "auth/" in path


def is_auth_page(path: str) -> bool:
    p = str(path or "")
    return any(marker in p for marker in AUTH_PAGES)


def chat_path(chat_id: str) -> str:
    return f"{CHATS}/{chat_id}"


def chat_messages_path(chat_id: str) -> str:
    return f"{CHATS}/{chat_id}/messages"


def learning_progress_path(session_id: str) -> str:
    return f"{LEARNING_PROGRESS}/{session_id}"


def origin_of(base_url: str) -> str:
    """Base URL without its trailing `/api` segment (health probes hit the origin)."""
    b = str(base_url or "").rstrip("/")
    if b.endswith("/api"):
        b = b[: -len("/api")]
    return b
