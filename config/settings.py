from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from pydantic import SecretStr

from .public_config import PublicConfig
from .secret_config import SecretConfig


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class Settings:
    """
    Public + secret config behind one object.

    Attribute lookups fall through to the secret half first, then the public one.
    """

    public: PublicConfig
    secret: SecretConfig

    def __getattr__(self, name: str) -> Any:
        if hasattr(self.secret, name):
            return getattr(self.secret, name)
        return getattr(self.public, name)

    def api_base_url(self) -> str:
        return self.public.api_base_url()

    def login_password_value(self) -> str:
        pw = self.secret.login_password
        return pw.get_secret_value() if pw is not None else ""


def _strict() -> bool:
    return str(os.environ.get("STRICT_CONFIG", "") or "").strip().lower() in {"1", "true", "yes"}


def _config_problems(s: Settings) -> list[str]:
    pub = s.public
    out: list[str] = []
    if pub.is_production() and not pub.api_base_url().startswith("https://"):
        out.append("SEMANAMI_API_URL (insecure scheme in production)")
    if float(pub.request_timeout_sec) <= 0:
        out.append("REQUEST_TIMEOUT_SEC")
    if float(pub.refresh_timeout_sec) <= 0:
        out.append("REFRESH_TIMEOUT_SEC")
    if not str(pub.login_path or "").startswith("/"):
        out.append("LOGIN_PATH")
    return sorted(set(out))


def _validate_settings(s: Settings) -> None:
    """Warn about unsafe client settings; STRICT_CONFIG=1 turns the warning into ConfigError."""
    problems = _config_problems(s)
    if not problems:
        return
    if _strict():
        raise ConfigError("Unsafe client configuration detected: " + ", ".join(problems))
    logging.getLogger("semanami_client").warning(
        "unsafe_config_detected", extra={"problems": problems, "strict_config": False}
    )


def _secret_marker(value: Any) -> str:
    if isinstance(value, SecretStr):
        value = value.get_secret_value()
    return "SET" if value is not None and str(value).strip() else "UNSET"


def get_safe_config_report() -> dict[str, Any]:
    """
    Effective configuration, safe to print or attach to a bug report.

    Secrets appear only as SET/UNSET.
    """
    s = get_settings()
    public = {
        k: (str(v) if hasattr(v, "__fspath__") else v) for k, v in s.public.model_dump().items()
    }
    public["api_base_url"] = s.public.api_base_url()
    secrets = {k: _secret_marker(getattr(s.secret, k, None)) for k in sorted(type(s.secret).model_fields)}
    return {"strict_config": _strict(), "public": public, "secrets": secrets}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    s = Settings(public=PublicConfig(), secret=SecretConfig())
    _validate_settings(s)
    return s
