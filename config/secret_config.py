from __future__ import annotations

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class SecretConfig(BaseSettings):
    """
    Sensitive config.

    This module is safe to commit: it contains *no* secrets, only loading logic.
    Real secret values should come from:
      - environment variables (preferred)
      - optional local `.env.secrets` file (developer convenience)
    """

    model_config = SettingsConfigDict(
        env_file=".env.secrets",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # optional CLI login credentials
    login_email: str | None = Field(
        default=None, validation_alias=AliasChoices("SEMANAMI_EMAIL", "SEMANAMI_LOGIN_EMAIL")
    )
    login_password: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("SEMANAMI_PASSWORD", "SEMANAMI_LOGIN_PASSWORD")
    )
