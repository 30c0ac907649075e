"""Tests for routing termination signals to subscribed controllers."""

from __future__ import annotations

import asyncio
import gc
import os
import signal
import weakref
from typing import List

import pytest

from service_lifecycle.signals import router_for


@pytest.mark.asyncio
async def test_router_is_shared_per_loop():
    loop = asyncio.get_running_loop()
    assert router_for(loop) is router_for(loop)


@pytest.mark.asyncio
async def test_delivers_to_each_subscriber_until_unsubscribed():
    router = router_for(asyncio.get_running_loop())
    received: List[str] = []

    def first(signum: int) -> None:
        received.append(f"first:{signal.Signals(signum).name}")

    def second(signum: int) -> None:
        received.append(f"second:{signal.Signals(signum).name}")

    router.subscribe(signal.SIGUSR1, first)
    router.subscribe(signal.SIGUSR1, second)
    try:
        os.kill(os.getpid(), signal.SIGUSR1)
        await asyncio.sleep(0.05)
        router.unsubscribe(signal.SIGUSR1, second)
        assert router.subscribers(signal.SIGUSR1) == 1
        os.kill(os.getpid(), signal.SIGUSR1)
        await asyncio.sleep(0.05)
    finally:
        router.unsubscribe(signal.SIGUSR1, first)
        router.unsubscribe(signal.SIGUSR1, second)

    assert received == ["first:SIGUSR1", "second:SIGUSR1", "first:SIGUSR1"]
    assert router.subscribers(signal.SIGUSR1) == 0


def test_routers_do_not_keep_closed_loops_alive():
    loop_refs = []
    for _ in range(5):
        loop = asyncio.new_event_loop()
        router = router_for(loop)
        assert router.loop is loop
        loop_refs.append(weakref.ref(loop))
        loop.close()
        del loop, router

    gc.collect()

    assert all(ref() is None for ref in loop_refs)
