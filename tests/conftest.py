from __future__ import annotations

import pytest

from semanami_client.config import get_settings


@pytest.fixture(autouse=True)
def _test_env(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = tmp_path_factory.mktemp("semanami_test")
    (root / "state").mkdir(parents=True, exist_ok=True)
    (root / "logs").mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("SEMANAMI_STATE_DIR", str(root / "state"))
    monkeypatch.setenv("SEMANAMI_LOG_DIR", str(root / "logs"))
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("LOGIN_REDIRECT_DELAY_SEC", "0")
    monkeypatch.setenv("RETRY_BASE_DELAY_SEC", "0")
    monkeypatch.delenv("SEMANAMI_API_URL", raising=False)
    monkeypatch.delenv("REACT_APP_API_URL", raising=False)
    monkeypatch.delenv("SEMANAMI_EMAIL", raising=False)
    monkeypatch.delenv("SEMANAMI_PASSWORD", raising=False)
    monkeypatch.delenv("STRICT_CONFIG", raising=False)
    get_settings.cache_clear()
