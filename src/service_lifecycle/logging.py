"""
Structured logging configuration for the service lifecycle.

Library diagnostics are emitted through structlog on top of the standard
``logging`` handlers. The optional console sink forwards Log/Info/Warn/Error
lifecycle events to a dedicated logger so that embedders get readable output
without registering their own subscribers.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any, Callable, Dict, Tuple, cast

import structlog
from structlog.types import FilteringBoundLogger

from .enums import EventCategory

if TYPE_CHECKING:
    from .events import Event

CONSOLE_LOGGER_NAME = "service_lifecycle.console"

_CONSOLE_LEVELS: Dict[EventCategory, str] = {
    EventCategory.LOG: "info",
    EventCategory.INFO: "info",
    EventCategory.WARN: "warning",
    EventCategory.ERROR: "error",
}


def setup_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """
    Set up structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format (json, console)
    """
    level = getattr(logging, log_level.upper())

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if log_format == "json":
        processors.extend(
            [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
        )
    else:
        processors.extend(
            [structlog.processors.format_exc_info, structlog.dev.ConsoleRenderer(colors=False)]
        )

    structlog.configure(
        processors=processors,  # type: ignore[arg-type]
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.addHandler(console_handler)
    root_logger.setLevel(level)

    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> FilteringBoundLogger:
    """
    Get a structured logger.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return cast(FilteringBoundLogger, structlog.get_logger(name))


def format_event_args(args: Tuple[Any, ...]) -> str:
    """Render event arguments the way a console would print them."""
    return " ".join(str(arg) for arg in args)


def console_subscriber(category: EventCategory) -> Callable[["Event[Any]"], bool]:
    """Build a console sink subscriber for one log-like category."""
    method_name = _CONSOLE_LEVELS[category]
    console = get_logger(CONSOLE_LOGGER_NAME)

    def _write(event: "Event[Any]") -> bool:
        getattr(console, method_name)(
            format_event_args(event.args), category=event.category.value
        )
        return True

    _write.__name__ = f"console_{category.value}"
    return _write
