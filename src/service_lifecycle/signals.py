"""Termination-signal routing shared by every controller on one event loop.

The loop holds a single handler per signal, so controllers subscribe here
instead of installing handlers directly; each subscribed controller receives
every delivered signal.
"""

from __future__ import annotations

import asyncio
import signal
import weakref
from typing import Any, Callable, Dict, List, Optional

from .logging import get_logger

logger = get_logger(__name__)

SignalCallback = Callable[[int], None]

TERMINATION_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class SignalRouter:
    """Fans out signals received on ``loop`` to subscribed callbacks.

    Only a weak reference to the loop is kept, so a router never keeps a
    closed loop (or its entry in the per-loop registry) alive.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop_ref = weakref.ref(loop)
        self._callbacks: Dict[int, List[SignalCallback]] = {}

    @property
    def loop(self) -> Optional[asyncio.AbstractEventLoop]:
        return self._loop_ref()

    def subscribe(self, signum: int, callback: SignalCallback) -> None:
        callbacks = self._callbacks.setdefault(signum, [])
        if not callbacks:
            self._install(signum)
        callbacks.append(callback)

    def unsubscribe(self, signum: int, callback: SignalCallback) -> None:
        callbacks = self._callbacks.get(signum)
        if not callbacks or callback not in callbacks:
            return
        callbacks.remove(callback)
        if not callbacks:
            del self._callbacks[signum]
            self._uninstall(signum)

    def subscribers(self, signum: int) -> int:
        return len(self._callbacks.get(signum, ()))

    def _deliver(self, signum: int) -> None:
        logger.info("Received signal", signal=signal.Signals(signum).name)
        for callback in list(self._callbacks.get(signum, ())):
            callback(signum)

    def _install(self, signum: int) -> None:
        loop = self.loop
        if loop is None:
            raise RuntimeError("Event loop for this signal router no longer exists")
        try:
            loop.add_signal_handler(signum, self._deliver, signum)
        except NotImplementedError:
            # Event loops without signal support (Windows)
            loop_ref = self._loop_ref

            def handler(received: int, _frame: Any) -> None:
                target = loop_ref()
                if target is not None and not target.is_closed():
                    target.call_soon_threadsafe(self._deliver, received)

            signal.signal(signum, handler)

    def _uninstall(self, signum: int) -> None:
        loop = self.loop
        if loop is not None:
            try:
                loop.remove_signal_handler(signum)
                return
            except NotImplementedError:
                pass
        signal.signal(signum, signal.SIG_DFL)


_routers: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, SignalRouter]" = (
    weakref.WeakKeyDictionary()
)


def router_for(loop: asyncio.AbstractEventLoop) -> SignalRouter:
    """Return the router owning signal handlers on ``loop``."""
    router = _routers.get(loop)
    if router is None:
        router = SignalRouter(loop)
        _routers[loop] = router
    return router
