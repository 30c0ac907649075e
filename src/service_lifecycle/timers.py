"""One-shot deadline timer bound to the running event loop, with a thread watchdog."""

from __future__ import annotations

import asyncio
import threading
from typing import Callable, Optional

# How long the watchdog waits for the loop to run its own expiry callback
STALL_GRACE_MS = 50


class DeadlineTimer:
    """Calls ``on_expire`` once unless cancelled before ``timeout_ms`` elapses.

    Expiry normally runs on the event loop. A daemon watchdog thread covers the
    case where the loop itself is blocked (a synchronous subscriber stuck in
    I/O): if the loop has not run its expiry ``STALL_GRACE_MS`` after the
    deadline, ``on_stall`` is called from the watchdog thread instead. Exactly
    one of the two callbacks runs.
    """

    def __init__(
        self,
        timeout_ms: int,
        on_expire: Callable[[], None],
        on_stall: Optional[Callable[[], None]] = None,
    ):
        if timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        self.timeout_ms = timeout_ms
        self._on_expire = on_expire
        self._on_stall = on_stall
        self._handle: Optional[asyncio.TimerHandle] = None
        self._watchdog: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._settled = threading.Event()
        self._started = False
        self._expired = False
        self._stalled = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def active(self) -> bool:
        return self._handle is not None

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def stalled(self) -> bool:
        """True when expiry was forced by the watchdog because the loop was blocked."""
        return self._stalled

    def start(self) -> None:
        """Arm the timer on the running loop; a second call is a no-op."""
        if self._started:
            return
        loop = asyncio.get_running_loop()
        self._started = True
        self._handle = loop.call_later(self.timeout_ms / 1000.0, self._fire)

        if self._on_stall is not None:
            self._watchdog = threading.Timer(self.timeout_ms / 1000.0, self._watch)
            self._watchdog.daemon = True
            self._watchdog.start()

    def cancel(self) -> None:
        with self._lock:
            self._settled.set()
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

    def _claim(self) -> bool:
        with self._lock:
            if self._settled.is_set():
                return False
            self._settled.set()
            self._expired = True
            return True

    def _fire(self) -> None:
        self._handle = None
        if self._claim():
            self._on_expire()

    def _watch(self) -> None:
        if self._settled.wait(STALL_GRACE_MS / 1000.0):
            return
        if self._claim():
            self._stalled = True
            self._on_stall()
