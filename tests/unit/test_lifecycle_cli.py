"""Tests for the service-lifecycle command line interface."""

from __future__ import annotations

from typing import List
from unittest.mock import Mock

import httpx
import pytest
from click.testing import CliRunner

from service_lifecycle import Application, ExitCode
from service_lifecycle.cli.main import build_demo_app, main

from tests.helpers import FakeListener


def test_serve_help_lists_options():
    result = CliRunner().invoke(main, ["serve", "--help"])

    assert result.exit_code == 0
    for option in ("--host", "--port", "--banner", "--shutdown-timeout-ms", "--health-path", "--health-user-agent"):
        assert option in result.output


def test_serve_builds_configured_lifecycle(monkeypatch):
    captured: List[Application] = []

    def fake_run(self):
        captured.append(self)
        return ExitCode.OK

    monkeypatch.setattr(Application, "run", fake_run)
    setup_logging = Mock()
    monkeypatch.setattr("service_lifecycle.cli.main.setup_logging", setup_logging)

    result = CliRunner().invoke(
        main,
        [
            "--log-format",
            "json",
            "serve",
            "--host",
            "127.0.0.1",
            "--port",
            "0",
            "--banner",
            "Demo/9",
            "--shutdown-timeout-ms",
            "750",
            "--health-path",
            "/healthz",
        ],
    )

    assert result.exit_code == 0, result.output
    setup_logging.assert_called_once_with(log_level="INFO", log_format="json")
    lifecycle = captured[0]
    assert lifecycle.banner == "Demo/9"
    assert lifecycle.shutdown_timeout_ms == 750
    assert lifecycle.health_check.match_paths == {"/healthz"}
    assert [(listener.host, listener.port) for listener in lifecycle.listeners] == [("127.0.0.1", 0)]
    assert len(lifecycle.dispatcher("shutdown").subscribers) == 2


@pytest.mark.asyncio
async def test_demo_app_serves_hello_once_listening(make_lifecycle):
    lifecycle = make_lifecycle(banner="Demo/9")
    build_demo_app(lifecycle, countdown=1)
    lifecycle.register_listener(FakeListener())
    await lifecycle.start()

    transport = httpx.ASGITransport(app=lifecycle.web_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/")

    assert response.status_code == 200
    assert response.json() == {"message": "Hello from Demo/9"}
