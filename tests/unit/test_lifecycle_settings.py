"""Tests for environment-driven lifecycle settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from service_lifecycle.config import LifecycleSettings


def test_defaults():
    settings = LifecycleSettings()
    assert settings.banner is None
    assert settings.use_console is False
    assert settings.shutdown_timeout_ms == 5000
    assert settings.listener_shutdown_timeout_ms == 30000
    assert settings.notify_ready is False
    assert settings.host == "0.0.0.0"
    assert settings.port == 8080
    assert settings.health_check_paths == []
    assert "GoogleHC/1.0" in settings.health_check_user_agents
    assert settings.log_level == "INFO"
    assert settings.log_format == "console"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("LIFECYCLE_BANNER", "Env/2.0")
    monkeypatch.setenv("LIFECYCLE_SHUTDOWN_TIMEOUT_MS", "1500")
    monkeypatch.setenv("LIFECYCLE_NOTIFY_READY", "true")
    monkeypatch.setenv("LIFECYCLE_HEALTH_CHECK_PATHS", "/healthz, /livez")
    monkeypatch.setenv("LIFECYCLE_HEALTH_CHECK_USER_AGENTS", "ELB-HealthChecker/2.0")
    monkeypatch.setenv("LIFECYCLE_LOG_LEVEL", "debug")
    monkeypatch.setenv("PORT", "3000")

    settings = LifecycleSettings()

    assert settings.banner == "Env/2.0"
    assert settings.shutdown_timeout_ms == 1500
    assert settings.notify_ready is True
    assert settings.health_check_paths == ["/healthz", "/livez"]
    assert settings.health_check_user_agents == ["ELB-HealthChecker/2.0"]
    assert settings.log_level == "DEBUG"
    assert settings.port == 3000

    config = settings.health_check_config()
    assert config.match_paths == {"/healthz", "/livez"}
    assert config.match_user_agents == {"ELB-HealthChecker/2.0"}


def test_prefixed_port_is_accepted(monkeypatch):
    monkeypatch.setenv("LIFECYCLE_PORT", "4000")
    assert LifecycleSettings().port == 4000


def test_dotenv_file_is_read(tmp_path):
    (tmp_path / ".env").write_text("LIFECYCLE_BANNER=FromFile/1.0\n")
    assert LifecycleSettings().banner == "FromFile/1.0"


@pytest.mark.parametrize(
    "field, value",
    [
        ("shutdown_timeout_ms", 0),
        ("listener_shutdown_timeout_ms", -1),
        ("log_level", "LOUD"),
        ("log_format", "xml"),
    ],
)
def test_invalid_values_rejected(field, value):
    with pytest.raises(ValidationError):
        LifecycleSettings(**{field: value})
