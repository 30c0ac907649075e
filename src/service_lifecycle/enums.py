"""Enumerations shared by the lifecycle controller, dispatchers and listeners."""

from enum import Enum, IntEnum


class RunningState(str, Enum):
    """Overall process state owned by the lifecycle controller.

    Intended progression is ``INITIALISING -> STARTING -> READY -> LISTENING``.
    ``SHUTTING_DOWN`` is reachable from any state and is never left.
    """

    INITIALISING = "init"
    STARTING = "starting"
    READY = "ready"
    LISTENING = "listening"
    SHUTTING_DOWN = "shuttingDown"


class EventCategory(str, Enum):
    """Lifecycle event categories; each owns exactly one dispatcher."""

    STARTUP = "startup"
    SHUTDOWN = "shutdown"
    LISTENING = "listening"
    LOG = "log"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    REQUEST = "request"


class DispatchMode(str, Enum):
    """How a dispatcher invokes its subscribers."""

    SEQUENTIAL = "sequential"
    CONCURRENT = "concurrent"

    @classmethod
    def default_for(cls, category: EventCategory) -> "DispatchMode":
        if category in (EventCategory.STARTUP, EventCategory.SHUTDOWN):
            return cls.SEQUENTIAL
        return cls.CONCURRENT


class ListenerKind(str, Enum):
    """Supported listener transports."""

    HTTP = "http"


class ListenerState(str, Enum):
    """State of a single network listener."""

    INITIALISING = "initialising"
    LISTENING = "listening"
    ERROR = "error"


class ExitCode(IntEnum):
    """Process exit statuses used by the shutdown coordinator."""

    OK = 0
    SHUTDOWN_FAILED = 1
    SHUTDOWN_TIMEOUT = 2
    LISTENER_CLOSE_FAILED = 3
