"""Integration tests driving real loopback HTTP listeners through the lifecycle."""

from __future__ import annotations

import asyncio
import socket

import httpx
import pytest

from service_lifecycle.enums import EventCategory, ExitCode, ListenerState, RunningState

from tests.helpers import EventRecorder

pytestmark = pytest.mark.integration

GOOGLE_HC = "GoogleHC/1.0"


@pytest.fixture
def lifecycle(make_lifecycle):
    lifecycle = make_lifecycle(banner="Integration/1.0")

    @lifecycle.web_app.get("/hello")
    async def hello() -> dict:
        return {"hello": "world"}

    return lifecycle


@pytest.mark.asyncio
async def test_listener_binds_serves_and_closes(lifecycle, terminate):
    recorder = EventRecorder(lifecycle)
    listener = lifecycle.add_listener(0, host="127.0.0.1")
    lifecycle.on_shutdown(lambda event: lifecycle.shutdown_listeners())

    assert await lifecycle.start() is RunningState.LISTENING
    assert listener.state is ListenerState.LISTENING
    assert listener.port != 0
    address = listener.listening_address()
    assert address == f"http://127.0.0.1:{listener.port}/"

    async with httpx.AsyncClient(base_url=address) as client:
        hello = await client.get("/hello")
        health = await client.get("/", headers={"user-agent": GOOGLE_HC})

    assert hello.status_code == 200
    assert hello.json() == {"hello": "world"}
    assert hello.headers["server"] == "Integration/1.0"
    assert health.status_code == 200
    assert health.json()["state"] == "listening"

    assert await lifecycle.shutdown() is ExitCode.OK
    terminate.assert_called_once_with(0)
    assert listener.is_serving is False
    assert f"Integration/1.0 listening at {address}" in recorder.messages(EventCategory.INFO)

    async with httpx.AsyncClient(base_url=address) as client:
        with pytest.raises(httpx.ConnectError):
            await client.get("/hello")


@pytest.mark.asyncio
async def test_port_conflict_puts_listener_in_error(lifecycle):
    recorder = EventRecorder(lifecycle)
    with socket.create_server(("127.0.0.1", 0)) as occupied:
        port = occupied.getsockname()[1]
        blocked = lifecycle.add_listener(port, host="127.0.0.1")

        state = await lifecycle.start()
        await lifecycle.flush_events()

    assert state is RunningState.READY
    assert blocked.state is ListenerState.ERROR
    assert lifecycle.active_listeners() == []
    errors = recorder.messages(EventCategory.ERROR)
    assert errors[0].startswith(f"Unable to start Integration/1.0 listener at http://127.0.0.1:{port}/")


@pytest.mark.asyncio
async def test_conflict_on_one_listener_does_not_stop_the_other(lifecycle):
    lifecycle.on_shutdown(lambda event: lifecycle.shutdown_listeners())
    with socket.create_server(("127.0.0.1", 0)) as occupied:
        blocked = lifecycle.add_listener(occupied.getsockname()[1], host="127.0.0.1")
        working = lifecycle.add_listener(0, host="127.0.0.1")

        assert await lifecycle.start() is RunningState.LISTENING

    assert blocked.state is ListenerState.ERROR
    assert lifecycle.active_listeners() == [working]
    assert await lifecycle.shutdown() is ExitCode.OK


@pytest.mark.asyncio
async def test_requests_during_shutdown_are_refused(lifecycle):
    listener = lifecycle.add_listener(0, host="127.0.0.1")
    release = asyncio.Event()

    async def drain(event) -> bool:
        await release.wait()
        return await lifecycle.shutdown_listeners()

    lifecycle.on_shutdown(drain)
    await lifecycle.start()
    shutting_down = asyncio.create_task(lifecycle.shutdown())
    await asyncio.sleep(0.01)

    async with httpx.AsyncClient(base_url=listener.listening_address()) as client:
        refused = await client.get("/hello")
        health = await client.get("/hello", headers={"user-agent": GOOGLE_HC})

    assert refused.status_code == 503
    assert refused.headers["connection"] == "close"
    assert health.status_code == 503
    assert health.json()["state"] == "shuttingDown"

    release.set()
    assert await shutting_down is ExitCode.OK
