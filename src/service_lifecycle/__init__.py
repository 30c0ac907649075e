"""
Service lifecycle: startup, readiness, health and graceful shutdown for
asyncio web services.

The ``Application`` controller wraps a FastAPI app, owns the process running
state, publishes lifecycle events to subscribers and coordinates HTTP
listeners through startup and shutdown.
"""

__version__ = "1.0.0"

from .application import Application, terminate_process
from .config import LifecycleSettings
from .enums import (
    DispatchMode,
    EventCategory,
    ExitCode,
    ListenerKind,
    ListenerState,
    RunningState,
)
from .events import Event, EventDispatcher, RequestSnapshot
from .exceptions import (
    ConfigurationError,
    InvalidTransitionError,
    LifecycleError,
    ListenerBindError,
    ShutdownFailedError,
    ShutdownTimeoutError,
)
from .health import HealthCheckConfig, HealthReport
from .listeners import HTTPListener, Listener
from .logging import get_logger, setup_logging

__all__ = [
    "Application",
    "ConfigurationError",
    "DispatchMode",
    "Event",
    "EventCategory",
    "EventDispatcher",
    "ExitCode",
    "HTTPListener",
    "HealthCheckConfig",
    "HealthReport",
    "InvalidTransitionError",
    "LifecycleError",
    "LifecycleSettings",
    "Listener",
    "ListenerBindError",
    "ListenerKind",
    "ListenerState",
    "RequestSnapshot",
    "RunningState",
    "ShutdownFailedError",
    "ShutdownTimeoutError",
    "get_logger",
    "setup_logging",
    "terminate_process",
]
