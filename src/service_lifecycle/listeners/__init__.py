"""Network listeners managed by the lifecycle controller."""

from .base import DEFAULT_LISTENER_SHUTDOWN_TIMEOUT_MS, GracefulShutdown, Listener, ListenerOwner
from .http import HTTPListener

__all__ = [
    "DEFAULT_LISTENER_SHUTDOWN_TIMEOUT_MS",
    "GracefulShutdown",
    "HTTPListener",
    "Listener",
    "ListenerOwner",
]
