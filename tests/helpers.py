"""Test doubles shared by unit and integration tests."""

import asyncio
from collections import defaultdict
from typing import Any, Dict, List, Optional

from service_lifecycle import Application
from service_lifecycle.enums import EventCategory, ListenerKind, ListenerState
from service_lifecycle.listeners import GracefulShutdown


class FakeListener:
    """In-memory listener implementing the listener interface."""

    kind = ListenerKind.HTTP

    def __init__(
        self,
        owner: Any = None,
        bind_ok: bool = True,
        port: int = 9000,
        close_delay: float = 0.0,
        close_error: Optional[Exception] = None,
        shutdown_timeout_ms: int = 30000,
    ):
        self.host = "127.0.0.1"
        self.port = port
        self.domain = None
        self.state = ListenerState.INITIALISING
        self.shutdown_timeout_ms = shutdown_timeout_ms
        self.bind_ok = bind_ok
        self.close_delay = close_delay
        self.close_error = close_error
        self.start_calls = 0
        self.close_calls = 0
        self._graceful = GracefulShutdown(self, owner) if owner is not None else None

    async def start(self) -> bool:
        self.start_calls += 1
        self.state = ListenerState.LISTENING if self.bind_ok else ListenerState.ERROR
        return self.bind_ok

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        if self.close_error is not None:
            raise self.close_error

    async def shutdown(self) -> bool:
        return await self._graceful.run()

    def listening_address(self) -> str:
        return f"http://{self.host}:{self.port}/"


class EventRecorder:
    """Subscribes to every category of an Application and keeps the events."""

    def __init__(self, lifecycle: Application):
        self.events: Dict[EventCategory, List[Any]] = defaultdict(list)
        lifecycle.on_log(self._recorder(EventCategory.LOG))
        lifecycle.on_info(self._recorder(EventCategory.INFO))
        lifecycle.on_warn(self._recorder(EventCategory.WARN))
        lifecycle.on_error(self._recorder(EventCategory.ERROR))
        lifecycle.on_request(self._recorder(EventCategory.REQUEST))

    def _recorder(self, category: EventCategory):
        def record(event):
            self.events[category].append(event)
            return True

        return record

    def messages(self, category: EventCategory) -> List[str]:
        return [" ".join(str(arg) for arg in event.args) for event in self.events[category]]

