"""
Lifecycle controller.

``Application`` owns the process ``RunningState``, one ``EventDispatcher`` per
event category and the registered listeners. It drives the startup protocol
(startup hooks, listeners, listening hooks, readiness broadcast) and the
shutdown protocol (warning, state change, process-wide deadline, shutdown
hooks, exit status).

All transitions run on a single event loop, so no two of them interleave and
no locking is used around the state or the listener collection.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)

from fastapi import FastAPI

from .config import LifecycleSettings
from .enums import DispatchMode, EventCategory, ExitCode, ListenerState, RunningState
from .events import EventDispatcher, RequestSnapshot, Subscriber
from .exceptions import (
    ConfigurationError,
    InvalidTransitionError,
    ShutdownFailedError,
    ShutdownTimeoutError,
)
from .health import HealthCheckConfig, HealthReport, evaluate_health, process_uptime
from .listeners import HTTPListener, Listener
from .logging import console_subscriber, get_logger
from .middleware import LifecycleGateMiddleware
from .signals import TERMINATION_SIGNALS, SignalRouter, router_for
from .supervisor import SupervisorNotifier, is_shutdown_message
from .timers import DeadlineTimer

logger = get_logger(__name__)

DEFAULT_BANNER = "ServiceLifecycle"

SubscriberArg = Union[Subscriber[Any], Iterable[Subscriber[Any]], None]


def terminate_process(exit_code: int) -> None:
    """Flush logging and end the process immediately, skipping interpreter cleanup."""
    logging.shutdown()
    os._exit(exit_code)


class Application:
    """Coordinates startup, readiness, health and graceful shutdown of one service.

    Example:
        ```python
        lifecycle = Application(banner="Example/1.0", use_console=True)

        @lifecycle.on_startup
        async def connect(event):
            await database.connect()
            return True

        lifecycle.on_shutdown(lambda event: lifecycle.shutdown_listeners())
        lifecycle.add_listener(8080)
        lifecycle.run()
        ```
    """

    def __init__(
        self,
        web_app: Optional[FastAPI] = None,
        *,
        settings: Optional[LifecycleSettings] = None,
        banner: Optional[str] = None,
        use_console: Optional[bool] = None,
        on_startup: SubscriberArg = None,
        on_shutdown: SubscriberArg = None,
        on_listening: SubscriberArg = None,
        dispatch_modes: Optional[Mapping[Union[EventCategory, str], Union[DispatchMode, str]]] = None,
        shutdown_timeout_ms: Optional[int] = None,
        listener_shutdown_timeout_ms: Optional[int] = None,
        notify_ready: Optional[bool] = None,
        health_check: Optional[Union[HealthCheckConfig, Mapping[str, Any]]] = None,
        notifier: Optional[SupervisorNotifier] = None,
        terminate: Optional[Callable[[int], None]] = None,
    ):
        self.settings = settings or LifecycleSettings()
        self.banner: Optional[str] = banner if banner is not None else self.settings.banner
        self.shutdown_timeout_ms = self._positive(
            "shutdown_timeout_ms", shutdown_timeout_ms, self.settings.shutdown_timeout_ms
        )
        self.listener_shutdown_timeout_ms = self._positive(
            "listener_shutdown_timeout_ms",
            listener_shutdown_timeout_ms,
            self.settings.listener_shutdown_timeout_ms,
        )
        self.notify_ready = notify_ready if notify_ready is not None else self.settings.notify_ready
        self.health_check = self._health_check_config(health_check)

        self.logger = logger.bind(component="lifecycle")
        self._terminator = terminate or terminate_process
        self._notifier = notifier

        self._listeners: List[Listener] = []
        self._started = False
        self._exit_code: Optional[ExitCode] = None
        self._shutdown_timer: Optional[DeadlineTimer] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self._shutdown_complete = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending_emits: List[Tuple[EventCategory, Tuple[Any, ...]]] = []
        self._emit_tasks: Set[asyncio.Task] = set()
        self._signal_router: Optional[SignalRouter] = None
        self._installed_signals: List[int] = []
        self._console_enabled = False

        modes = self._dispatch_modes(dispatch_modes)
        initial: Dict[EventCategory, SubscriberArg] = {
            EventCategory.STARTUP: on_startup,
            EventCategory.SHUTDOWN: on_shutdown,
            EventCategory.LISTENING: on_listening,
        }
        self._dispatchers: Dict[EventCategory, EventDispatcher[Any]] = {
            category: EventDispatcher(
                self, category, mode=modes.get(category), subscribers=initial.get(category)
            )
            for category in EventCategory
        }

        if use_console if use_console is not None else self.settings.use_console:
            self.use_console()

        self.web_app = web_app or FastAPI()
        self.web_app.add_middleware(LifecycleGateMiddleware, lifecycle=self)

        self._state = RunningState.INITIALISING
        self._announce_state(self._state)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def running_state(self) -> RunningState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state in (RunningState.READY, RunningState.LISTENING)

    @property
    def exit_code(self) -> Optional[ExitCode]:
        return self._exit_code

    def banner_text(self, suffix: Optional[str] = None) -> str:
        banner = self.banner or DEFAULT_BANNER
        if suffix:
            return f"{banner} {suffix}"
        return banner

    def dispatcher(self, category: Union[EventCategory, str]) -> EventDispatcher[Any]:
        return self._dispatchers[EventCategory(category)]

    def _set_state(self, state: RunningState) -> None:
        if self._state is RunningState.SHUTTING_DOWN and state is not RunningState.SHUTTING_DOWN:
            raise InvalidTransitionError(
                "Cannot leave shutting down state",
                current_state=self._state.value,
                attempted=state.value,
            )
        self._state = state
        self._announce_state(state)

    def _announce_state(self, state: RunningState) -> None:
        message = self.banner_text(f"is {state.value}")
        if state is RunningState.SHUTTING_DOWN:
            self.warn(message)
        else:
            self.info(message)

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def on_startup(self, callback: Subscriber[Any]) -> Subscriber[Any]:
        self._dispatchers[EventCategory.STARTUP].subscribe(callback)
        return callback

    def on_shutdown(self, callback: Subscriber[Any]) -> Subscriber[Any]:
        self._dispatchers[EventCategory.SHUTDOWN].subscribe(callback)
        return callback

    def on_listening(self, callback: Subscriber[Any]) -> Subscriber[Any]:
        self._dispatchers[EventCategory.LISTENING].subscribe(callback)
        return callback

    def on_log(self, callback: Subscriber[Any]) -> Subscriber[Any]:
        self._dispatchers[EventCategory.LOG].subscribe(callback)
        return callback

    def on_info(self, callback: Subscriber[Any]) -> Subscriber[Any]:
        self._dispatchers[EventCategory.INFO].subscribe(callback)
        return callback

    def on_warn(self, callback: Subscriber[Any]) -> Subscriber[Any]:
        self._dispatchers[EventCategory.WARN].subscribe(callback)
        return callback

    def on_error(self, callback: Subscriber[Any]) -> Subscriber[Any]:
        self._dispatchers[EventCategory.ERROR].subscribe(callback)
        return callback

    def on_request(self, callback: Subscriber[Any]) -> Subscriber[Any]:
        self._dispatchers[EventCategory.REQUEST].subscribe(callback)
        return callback

    def use_console(self) -> None:
        """Route Log/Info/Warn/Error events to the console logger."""
        if self._console_enabled:
            return
        self._console_enabled = True
        for category in (EventCategory.LOG, EventCategory.INFO, EventCategory.WARN, EventCategory.ERROR):
            self._dispatchers[category].subscribe(console_subscriber(category))

    # ------------------------------------------------------------------
    # Fire-and-forget emits
    # ------------------------------------------------------------------

    def log(self, *args: Any) -> None:
        self._emit(EventCategory.LOG, args)

    def info(self, *args: Any) -> None:
        self._emit(EventCategory.INFO, args)

    def warn(self, *args: Any) -> None:
        self._emit(EventCategory.WARN, args)

    def error(self, *args: Any) -> None:
        self._emit(EventCategory.ERROR, args)

    def report_fatal(self, *args: Any) -> None:
        """Deliver an Error event synchronously ahead of process termination."""
        self._dispatchers[EventCategory.ERROR].dispatch_nowait(args)

    def emit_request(self, snapshot: RequestSnapshot) -> None:
        self._emit(EventCategory.REQUEST, (snapshot,))

    def _emit(self, category: EventCategory, args: Tuple[Any, ...]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; dispatched once start() or shutdown() runs
            self._pending_emits.append((category, args))
            return

        task = loop.create_task(self._dispatchers[category].dispatch(args))
        self._emit_tasks.add(task)
        task.add_done_callback(self._emit_done)

    def _emit_done(self, task: asyncio.Task) -> None:
        self._emit_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error("Event dispatch failed", error=str(exc), exc_info=exc)

    def _flush_pending(self) -> None:
        pending, self._pending_emits = self._pending_emits, []
        for category, args in pending:
            self._emit(category, args)

    async def flush_events(self) -> None:
        """Wait for every outstanding fire-and-forget dispatch to finish."""
        self._flush_pending()
        while self._emit_tasks:
            await asyncio.gather(*list(self._emit_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    @property
    def listeners(self) -> Tuple[Listener, ...]:
        return tuple(self._listeners)

    def add_listener(
        self,
        port: Optional[int] = None,
        host: Optional[str] = None,
        domain: Optional[str] = None,
        shutdown_timeout_ms: Optional[int] = None,
    ) -> HTTPListener:
        """Create and register an HTTP listener serving ``web_app``.

        Args:
            port: Port to bind; defaults to the configured port (``PORT`` or 8080)
            host: Interface to bind; defaults to ``0.0.0.0``
            domain: Public name used in the listening address
            shutdown_timeout_ms: Deadline for this listener's own close

        Returns:
            The registered listener
        """
        listener = HTTPListener(
            self,
            host=host or self.settings.host,
            port=port if port is not None else self.settings.port,
            domain=domain,
            shutdown_timeout_ms=self._positive(
                "shutdown_timeout_ms", shutdown_timeout_ms, self.listener_shutdown_timeout_ms
            ),
        )
        self.register_listener(listener)
        return listener

    def register_listener(self, listener: Listener) -> Listener:
        """Register any listener implementation before ``start()``."""
        if self._started:
            raise ConfigurationError(
                "Listeners must be registered before start()", config_key="listeners"
            )
        if not isinstance(listener, Listener):
            raise ConfigurationError(
                f"{listener!r} does not implement the listener interface",
                config_key="listeners",
            )
        self._listeners.append(listener)
        return listener

    def active_listeners(self) -> List[Listener]:
        return [listener for listener in self._listeners if listener.state is ListenerState.LISTENING]

    async def _start_listeners(self) -> None:
        for listener in self._listeners:
            if self._state is RunningState.SHUTTING_DOWN:
                return
            try:
                await listener.start()
            except Exception as exc:
                self.logger.exception("Listener start raised", listener=repr(listener))
                self.error(f"Unable to start listener {listener!r}", str(exc))

    async def shutdown_listeners(self) -> bool:
        """Run every listener's own deadline-bounded shutdown, in registration order.

        Meant to be called from a shutdown subscriber.
        """
        results = []
        for listener in self._listeners:
            results.append(await listener.shutdown())
        return all(results)

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> RunningState:
        """Run the startup protocol.

        Returns:
            The state reached: LISTENING, READY (no listener bound) or
            STARTING (startup hooks failed)

        Raises:
            InvalidTransitionError: If called when not initialising
        """
        if self._state is not RunningState.INITIALISING:
            raise InvalidTransitionError(
                self._refusal_message(),
                current_state=self._state.value,
                attempted=RunningState.STARTING.value,
            )

        self._started = True
        self._flush_pending()
        self._set_state(RunningState.STARTING)

        startup_ok = await self._dispatchers[EventCategory.STARTUP].dispatch()
        if self._state is RunningState.SHUTTING_DOWN:
            return self._state
        if not startup_ok:
            self.error("Startup callbacks did not all return true")
            return self._state

        self._set_state(RunningState.READY)
        await self._start_listeners()
        if self._state is RunningState.SHUTTING_DOWN:
            return self._state

        if self.active_listeners():
            self._set_state(RunningState.LISTENING)
            await self._dispatchers[EventCategory.LISTENING].dispatch()
            self._broadcast_ready()
        else:
            self.warn(self.banner_text("is ready but no listener is accepting connections"))

        return self._state

    def _refusal_message(self) -> str:
        if self._state is RunningState.SHUTTING_DOWN:
            return "Called start when shutting down"
        return "Called start when already starting"

    def _broadcast_ready(self) -> None:
        if not self.notify_ready:
            return
        if self._notifier is None:
            self._notifier = SupervisorNotifier()
        self._notifier.notify_ready()

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health_report(self, request: Any = None) -> HealthReport:
        healthy = await evaluate_health(self._state, self.health_check.checks, request)
        return HealthReport(healthy=healthy, state=self._state, uptime=process_uptime())

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def shutdown(self, reason: str = "Shutdown requested") -> Optional[ExitCode]:
        """Run the shutdown protocol once and terminate the process.

        Later triggers while shutting down are ignored and return None.

        Returns:
            The exit status handed to ``terminate``
        """
        if self._state is RunningState.SHUTTING_DOWN:
            self.logger.debug("Shutdown already in progress", reason=reason)
            return None

        self._flush_pending()
        self.warn(reason)
        self._set_state(RunningState.SHUTTING_DOWN)
        self._notify_stopping()

        self._loop = asyncio.get_running_loop()
        timer = DeadlineTimer(
            self.shutdown_timeout_ms,
            self._on_shutdown_timeout,
            on_stall=self._on_shutdown_stall,
        )
        self._shutdown_timer = timer
        timer.start()

        result = await self._dispatchers[EventCategory.SHUTDOWN].dispatch()
        if result:
            exit_code = ExitCode.OK
            self.info(self.banner_text("shutdown complete"))
        else:
            exit_code = ExitCode.SHUTDOWN_FAILED
            failure = ShutdownFailedError("Shutdown callbacks did not all return true")
            self.logger.error(failure.message, error=failure.to_dict())
            self.error(failure.message)

        await self.flush_events()
        timer.cancel()
        if timer.expired:
            return ExitCode.SHUTDOWN_TIMEOUT

        self._finish(exit_code)
        return exit_code

    def trigger_shutdown(self, reason: str) -> Optional[asyncio.Task]:
        """Schedule ``shutdown()`` on the running loop; ignored if already shutting down."""
        if self._state is RunningState.SHUTTING_DOWN:
            self.logger.info("Ignoring shutdown trigger, already shutting down", reason=reason)
            return None
        self._shutdown_task = asyncio.get_running_loop().create_task(self.shutdown(reason))
        return self._shutdown_task

    def handle_supervisor_message(self, message: Any) -> Optional[asyncio.Task]:
        """Entry point for messages from a supervising parent process."""
        if is_shutdown_message(message):
            return self.trigger_shutdown("Received shutdown message")
        self.logger.debug("Ignoring supervisor message", message=repr(message))
        return None

    def terminate(self, exit_code: int) -> None:
        self.logger.info("Terminating process", exit_code=int(exit_code))
        self._terminator(int(exit_code))

    def _finish(self, exit_code: ExitCode) -> None:
        self._exit_code = exit_code
        self._shutdown_complete.set()
        self.terminate(exit_code)

    def _on_shutdown_timeout(self) -> None:
        error = ShutdownTimeoutError(timeout_ms=self.shutdown_timeout_ms)
        self.logger.error(error.message, error=error.to_dict())
        self.report_fatal(error.message)
        self._finish(ExitCode.SHUTDOWN_TIMEOUT)

    def _on_shutdown_stall(self) -> None:
        # Runs on the deadline watchdog thread while the loop is blocked
        error = ShutdownTimeoutError(
            timeout_ms=self.shutdown_timeout_ms, details={"event_loop_blocked": True}
        )
        self.logger.error(error.message, error=error.to_dict())
        self.report_fatal(error.message)
        self._exit_code = ExitCode.SHUTDOWN_TIMEOUT
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._shutdown_complete.set)
        self.terminate(ExitCode.SHUTDOWN_TIMEOUT)

    def _notify_stopping(self) -> None:
        if self.notify_ready and self._notifier is not None:
            self._notifier.notify_stopping()

    # ------------------------------------------------------------------
    # Signals and running
    # ------------------------------------------------------------------

    def install_signal_handlers(self, signals: Sequence[int] = TERMINATION_SIGNALS) -> None:
        """Subscribe this controller to termination signals on the running loop.

        Several controllers may subscribe on the same loop; each receives the
        signal and runs its own shutdown.
        """
        router = router_for(asyncio.get_running_loop())
        for signum in signals:
            if signum in self._installed_signals:
                continue
            router.subscribe(signum, self._handle_signal)
            self._installed_signals.append(signum)
        self._signal_router = router

    def remove_signal_handlers(self) -> None:
        router = self._signal_router
        if router is None:
            return
        for signum in self._installed_signals:
            router.unsubscribe(signum, self._handle_signal)
        self._installed_signals = []
        self._signal_router = None

    def _handle_signal(self, signum: int) -> None:
        self.trigger_shutdown(f"Received {signal.Signals(signum).name}")

    async def serve(self) -> Optional[ExitCode]:
        """Install signal handlers, start, and wait until shutdown has finished."""
        self.install_signal_handlers()
        try:
            await self.start()
            await self._shutdown_complete.wait()
        finally:
            self.remove_signal_handlers()
        return self._exit_code

    def run(self) -> Optional[ExitCode]:
        """Blocking entry point: run ``serve()`` on a new event loop."""
        return asyncio.run(self.serve())

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _positive(name: str, value: Optional[int], default: int) -> int:
        if value is None:
            return default
        if value <= 0:
            raise ConfigurationError(f"{name} must be positive", config_key=name)
        return value

    @staticmethod
    def _dispatch_modes(
        overrides: Optional[Mapping[Union[EventCategory, str], Union[DispatchMode, str]]]
    ) -> Dict[EventCategory, DispatchMode]:
        modes: Dict[EventCategory, DispatchMode] = {}
        for category, mode in (overrides or {}).items():
            try:
                modes[EventCategory(category)] = DispatchMode(mode)
            except ValueError as exc:
                raise ConfigurationError(
                    f"Invalid dispatch mode {mode!r} for {category!r}",
                    config_key="dispatch_modes",
                ) from exc
        return modes

    def _health_check_config(
        self, health_check: Optional[Union[HealthCheckConfig, Mapping[str, Any]]]
    ) -> HealthCheckConfig:
        if health_check is None:
            return self.settings.health_check_config()
        if isinstance(health_check, HealthCheckConfig):
            return health_check
        return HealthCheckConfig(**dict(health_check))
