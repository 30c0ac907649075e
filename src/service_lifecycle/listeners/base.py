"""Listener capability interface and deadline-bounded shutdown."""

from __future__ import annotations

import asyncio
from typing import Any, Optional, Protocol, runtime_checkable

from ..enums import ExitCode, ListenerKind, ListenerState
from ..exceptions import LifecycleError, ShutdownFailedError, ShutdownTimeoutError
from ..logging import get_logger
from ..timers import DeadlineTimer

logger = get_logger(__name__)

DEFAULT_LISTENER_SHUTDOWN_TIMEOUT_MS = 30000


class ListenerOwner(Protocol):
    """What a listener needs from the controller that owns it."""

    web_app: Any

    def banner_text(self, suffix: Optional[str] = None) -> str: ...

    def info(self, *args: Any) -> None: ...

    def error(self, *args: Any) -> None: ...

    def report_fatal(self, *args: Any) -> None: ...

    def terminate(self, exit_code: int) -> None: ...


@runtime_checkable
class Listener(Protocol):
    """One network endpoint with its own start/close lifecycle."""

    kind: ListenerKind
    host: str
    port: int
    domain: Optional[str]
    state: ListenerState
    shutdown_timeout_ms: int

    async def start(self) -> bool:
        """Bind and listen. Never raises; returns False and enters ERROR on failure."""
        ...

    async def close(self) -> None:
        """Stop accepting connections and let in-flight ones finish."""
        ...

    async def shutdown(self) -> bool:
        """Close under the listener's own deadline; idempotent."""
        ...

    def listening_address(self) -> str: ...


class GracefulShutdown:
    """Runs ``listener.close()`` under ``listener.shutdown_timeout_ms``.

    A close that raises or misses the deadline is fatal: the owner is asked
    to terminate the process with ``ExitCode.LISTENER_CLOSE_FAILED``. The
    close is issued once; every call to ``run`` reports its outcome.
    """

    def __init__(self, listener: Listener, owner: ListenerOwner):
        self._listener = listener
        self._owner = owner
        self._timer: Optional[DeadlineTimer] = None
        self._task: Optional[asyncio.Future] = None
        self._failed = False
        self._completed = False

    @property
    def requested(self) -> bool:
        return self._task is not None

    @property
    def completed(self) -> bool:
        return self._completed

    async def run(self) -> bool:
        if self._task is None:
            self._task = asyncio.ensure_future(self._close())
        return await asyncio.shield(self._task)

    async def _close(self) -> bool:
        self._timer = DeadlineTimer(
            self._listener.shutdown_timeout_ms, self._on_timeout, on_stall=self._on_timeout
        )
        self._timer.start()

        try:
            await self._listener.close()
        except Exception as exc:
            self._timer.cancel()
            logger.exception(
                "Listener close failed", address=self._listener.listening_address()
            )
            self._fail(
                ShutdownFailedError(
                    self._message(),
                    details={"reason": str(exc)},
                    component=self._listener.listening_address(),
                )
            )
            return False

        self._timer.cancel()
        if self._failed:
            return False
        self._completed = True
        return True

    def _on_timeout(self) -> None:
        self._fail(
            ShutdownTimeoutError(
                self._message(), timeout_ms=self._listener.shutdown_timeout_ms
            )
        )

    def _message(self) -> str:
        return (
            f"Unable to shutdown {self._owner.banner_text()} listener at "
            f"{self._listener.listening_address()}"
        )

    def _fail(self, error: LifecycleError) -> None:
        if self._failed:
            return
        self._failed = True
        logger.error(error.message, error=error.to_dict())
        self._owner.report_fatal(error.message)
        self._owner.terminate(ExitCode.LISTENER_CLOSE_FAILED)
