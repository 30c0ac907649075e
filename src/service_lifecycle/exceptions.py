"""Exception taxonomy for the service lifecycle."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class LifecycleError(Exception):
    """Base exception for all lifecycle errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__.upper()
        self.details = details or {}
        self.timestamp = timestamp or datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}'"
            f")"
        )


class InvalidTransitionError(LifecycleError):
    """Raised when a lifecycle transition is requested from an illegal state."""

    def __init__(
        self,
        message: str,
        error_code: str = "INVALID_TRANSITION",
        details: Optional[Dict[str, Any]] = None,
        current_state: Optional[str] = None,
        attempted: Optional[str] = None,
    ):
        super().__init__(message, error_code, details)
        self.current_state = current_state
        self.attempted = attempted
        if current_state:
            self.details["current_state"] = current_state
        if attempted:
            self.details["attempted"] = attempted


class ConfigurationError(LifecycleError):
    """Raised for invalid construction options."""

    def __init__(
        self,
        message: str = "Configuration error",
        error_code: str = "CONFIGURATION_ERROR",
        details: Optional[Dict[str, Any]] = None,
        config_key: Optional[str] = None,
    ):
        super().__init__(message, error_code, details)
        if config_key:
            self.details["config_key"] = config_key


class ListenerBindError(LifecycleError):
    """Describes a listener that could not bind its endpoint.

    Reported through the Error event category; never raised out of
    ``Listener.start()``.
    """

    def __init__(
        self,
        message: str = "Listener bind failed",
        error_code: str = "LISTENER_BIND_ERROR",
        details: Optional[Dict[str, Any]] = None,
        address: Optional[str] = None,
    ):
        super().__init__(message, error_code, details)
        if address:
            self.details["address"] = address


class ShutdownTimeoutError(LifecycleError):
    """Shutdown work did not finish before its deadline."""

    def __init__(
        self,
        message: str = "Shutdown timeout reached",
        error_code: str = "SHUTDOWN_TIMEOUT",
        details: Optional[Dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ):
        super().__init__(message, error_code, details)
        if timeout_ms:
            self.details["timeout_ms"] = timeout_ms


class ShutdownFailedError(LifecycleError):
    """Shutdown work completed but reported failure."""

    def __init__(
        self,
        message: str = "Shutdown failed",
        error_code: str = "SHUTDOWN_FAILED",
        details: Optional[Dict[str, Any]] = None,
        component: Optional[str] = None,
    ):
        super().__init__(message, error_code, details)
        if component:
            self.details["component"] = component
