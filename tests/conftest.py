"""
Shared pytest configuration for the service lifecycle tests.

Provides an isolated environment (no ``PORT``/``LIFECYCLE_*`` leakage), a
mocked process terminator and a controller factory.
"""

import logging
import os
from unittest.mock import Mock

import pytest
import structlog

from service_lifecycle import Application, LifecycleSettings
from service_lifecycle.supervisor import SupervisorNotifier


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Keep process environment and any local .env file out of the settings."""
    for name in list(os.environ):
        if name.upper().startswith("LIFECYCLE_") or name.upper() == "PORT":
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def terminate():
    return Mock(name="terminate")


@pytest.fixture
def sd_notifier():
    return Mock(name="SystemdNotifier")


@pytest.fixture
def notifier(sd_notifier):
    return SupervisorNotifier(notifier=sd_notifier)


@pytest.fixture
def make_lifecycle(terminate):
    """Factory for controllers whose process termination is mocked."""

    def _make(**kwargs) -> Application:
        kwargs.setdefault("terminate", terminate)
        kwargs.setdefault("settings", LifecycleSettings())
        return Application(**kwargs)

    return _make


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo any logging configuration a test installs."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)
