from __future__ import annotations

import os
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PRODUCTION_API_URL = "https://api.semanami-ai.com/api"
DEVELOPMENT_API_URL = "http://localhost:8000/api"


def _default_state_dir() -> Path:
    """
    Default client state directory.

    Honours XDG_STATE_HOME when set, otherwise ~/.local/state/semanami.
    """
    env = os.environ.get("XDG_STATE_HOME")
    base = Path(env) if env else Path.home() / ".local" / "state"
    return (base / "semanami").resolve()


class PublicConfig(BaseSettings):
    """
    Non-sensitive config with safe defaults.

    Loaded from (in order):
      - process env
      - optional `.env` file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- environment ---
    app_env: str = Field(default="development", validation_alias=AliasChoices("APP_ENV", "ENV"))

    # --- API endpoint ---
    # Raw value; use api_base_url() for the normalized form.
    api_url: str = Field(
        default="", validation_alias=AliasChoices("SEMANAMI_API_URL", "REACT_APP_API_URL")
    )
    request_timeout_sec: float = Field(default=60.0, alias="REQUEST_TIMEOUT_SEC")
    refresh_timeout_sec: float = Field(default=30.0, alias="REFRESH_TIMEOUT_SEC")
    health_probe_timeout_sec: float = Field(default=5.0, alias="HEALTH_PROBE_TIMEOUT_SEC")

    # --- client state (persisted access token, auth markers) ---
    state_dir: Path = Field(default_factory=_default_state_dir, alias="SEMANAMI_STATE_DIR")
    storage_name: str = Field(default="client_state.sqlite", alias="SEMANAMI_STORAGE_NAME")

    # --- navigation ---
    login_path: str = Field(default="/login", alias="LOGIN_PATH")
    login_redirect_delay_sec: float = Field(default=0.1, alias="LOGIN_REDIRECT_DELAY_SEC")

    # --- session heartbeat ---
    heartbeat_interval_sec: float = Field(default=15.0, alias="HEARTBEAT_INTERVAL_SEC")

    # --- explicit retries (never applied to the 401 refresh path) ---
    retry_max_attempts: int = Field(default=3, alias="RETRY_MAX_ATTEMPTS")
    retry_base_delay_sec: float = Field(default=1.0, alias="RETRY_BASE_DELAY_SEC")

    # --- logging ---
    log_dir: Path | None = Field(default=None, alias="SEMANAMI_LOG_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_max_bytes: int = Field(default=5 * 1024 * 1024, alias="LOG_MAX_BYTES")
    log_backup_count: int = Field(default=3, alias="LOG_BACKUP_COUNT")

    def is_production(self) -> bool:
        return str(self.app_env or "").strip().lower() in {"prod", "production"}

    def api_base_url(self) -> str:
        """
        Normalized API base URL.

        - trailing slashes are stripped
        - the path always ends with `/api`
        - unset: production host in production, localhost otherwise
        """
        raw = str(self.api_url or "").strip()
        if not raw:
            return PRODUCTION_API_URL if self.is_production() else DEVELOPMENT_API_URL
        raw = raw.rstrip("/")
        if not raw.endswith("/api"):
            raw += "/api"
        return raw

    def storage_path(self) -> Path:
        return Path(self.state_dir) / str(self.storage_name)

    def resolved_log_dir(self) -> Path:
        if self.log_dir is not None:
            return Path(self.log_dir)
        return Path(self.state_dir) / "logs"
