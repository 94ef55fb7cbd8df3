from __future__ import annotations

import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from toolgate.settings import GatewaySettings, get_gateway_settings


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # Keep a developer's .env or exported variables out of these tests.
    monkeypatch.chdir(tmp_path)
    for name in ("DEFAULT_TIMEOUT_MS", "MAX_TIMEOUT_MS", "MAX_OUTPUT_BYTES", "SHELL", "LOG_LEVEL"):
        monkeypatch.delenv(f"TOOLGATE_{name}", raising=False)


def test_defaults() -> None:
    settings = GatewaySettings()

    assert settings.DEFAULT_TIMEOUT_MS == 30_000
    assert settings.MAX_TIMEOUT_MS == 600_000
    assert settings.MAX_OUTPUT_BYTES == 1024 * 1024
    assert settings.SHELL is None
    assert settings.log_level_value == logging.INFO


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TOOLGATE_DEFAULT_TIMEOUT_MS", "1500")
    monkeypatch.setenv("TOOLGATE_SHELL", "/bin/bash")
    monkeypatch.setenv("TOOLGATE_LOG_LEVEL", "debug")

    settings = get_gateway_settings()

    assert settings.DEFAULT_TIMEOUT_MS == 1500
    assert settings.SHELL == "/bin/bash"
    assert settings.LOG_LEVEL == "DEBUG"


def test_dotenv_file_is_read(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("TOOLGATE_MAX_OUTPUT_BYTES=2048\n")

    assert GatewaySettings().MAX_OUTPUT_BYTES == 2048


def test_settings_are_cached() -> None:
    assert get_gateway_settings() is get_gateway_settings()


def test_unknown_log_level_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TOOLGATE_LOG_LEVEL", "chatty")

    with pytest.raises(ValidationError, match="TOOLGATE_LOG_LEVEL"):
        GatewaySettings()


def test_default_timeout_cannot_exceed_maximum() -> None:
    with pytest.raises(ValidationError, match="must not exceed"):
        GatewaySettings(DEFAULT_TIMEOUT_MS=10_000, MAX_TIMEOUT_MS=5_000)


def test_timeouts_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        GatewaySettings(DEFAULT_TIMEOUT_MS=0)
