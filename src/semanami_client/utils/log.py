from __future__ import annotations

import logging
import re
import sys
from collections.abc import Iterator
from contextlib import suppress
from logging.handlers import RotatingFileHandler
from typing import Any

import structlog

from semanami_client.config import get_settings

_REDACTED = "***REDACTED***"

_JWT_RE = re.compile(r"\beyJ[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\b")
_BEARER_RE = re.compile(r"(?i)\bBearer\s+([A-Za-z0-9_\-\.=]+)")
_KV_RE = re.compile(
    r"(?i)\b(access_token|accessToken|refresh_token|refreshToken|token|password|new_password|secret)\b"
    r"\s*[=:]\s*([^\s,;]+)"
)


def _password_literal() -> str | None:
    # Short values would blank out ordinary words.
    with suppress(Exception):
        raw = get_settings().login_password_value()
        if len(raw) >= 6:
            return raw
    return None


def redact_text(s: str) -> str:
    """Strip bearer tokens, JWTs, `key=value` secrets and the configured password."""
    lit = _password_literal()
    if lit and lit in s:
        s = s.replace(lit, _REDACTED)
    s = _JWT_RE.sub(_REDACTED, s)
    s = _BEARER_RE.sub(f"Bearer {_REDACTED}", s)
    return _KV_RE.sub(lambda m: f"{m.group(1)}={_REDACTED}", s)


def redact_event(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key, value in list(event_dict.items()):
        if isinstance(value, str):
            event_dict[key] = redact_text(value)
    return event_dict


def rename_event_to_msg(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    if "event" in event_dict and "msg" not in event_dict:
        event_dict["msg"] = event_dict.pop("event")
    return event_dict


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
        structlog.stdlib.add_log_level,
        redact_event,
        structlog.processors.format_exc_info,
        rename_event_to_msg,
    ]


def _handlers(formatter: logging.Formatter) -> Iterator[logging.Handler]:
    s = get_settings()
    # A read-only state dir must not break the client; stderr still works.
    with suppress(OSError):
        path = s.public.resolved_log_dir() / "client.log"
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            filename=str(path),
            maxBytes=int(s.log_max_bytes),
            backupCount=int(s.log_backup_count),
            encoding="utf-8",
        )
        fh.setFormatter(formatter)
        yield fh
    sh = logging.StreamHandler(sys.stderr)
    sh.setFormatter(formatter)
    yield sh


def _configure_structlog() -> structlog.stdlib.BoundLogger:
    root = logging.getLogger()
    root.setLevel(str(get_settings().log_level).upper())
    if getattr(root, "_semanami_structlog_configured", False):
        return structlog.get_logger("semanami_client")

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=_shared_processors(),
    )
    root.handlers.clear()
    for h in _handlers(formatter):
        root.addHandler(h)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    root._semanami_structlog_configured = True
    return structlog.get_logger("semanami_client")


logger = _configure_structlog()


def set_log_level(level: str) -> None:
    """Raise or lower filtering for this process (handlers stay as configured)."""
    lvl = getattr(logging, str(level).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(lvl)
    for h in root.handlers:
        h.setLevel(lvl)
