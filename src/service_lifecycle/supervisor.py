"""Readiness broadcast to a supervising parent process.

Uses the systemd notify protocol; when no supervisor socket is configured
(``NOTIFY_SOCKET`` unset) every notification is a silent no-op.
"""

from __future__ import annotations

from typing import Optional

import sdnotify

from .logging import get_logger

logger = get_logger(__name__)

SHUTDOWN_MESSAGE = "shutdown"


class SupervisorNotifier:
    """Sends READY/STOPPING notifications, each at most once per process."""

    def __init__(self, notifier: Optional[sdnotify.SystemdNotifier] = None):
        self._notifier = notifier or sdnotify.SystemdNotifier()
        self._ready_sent = False
        self._stopping_sent = False

    @property
    def ready_sent(self) -> bool:
        return self._ready_sent

    def notify_ready(self) -> bool:
        """Tell the supervisor the service is ready. Returns False if already sent."""
        if self._ready_sent:
            return False
        self._ready_sent = True
        self._notifier.notify("READY=1")
        logger.info("Sent readiness notification to supervisor")
        return True

    def notify_stopping(self) -> bool:
        if self._stopping_sent:
            return False
        self._stopping_sent = True
        self._notifier.notify("STOPPING=1")
        logger.debug("Sent stopping notification to supervisor")
        return True


def is_shutdown_message(message: object) -> bool:
    """True for the conventional inbound shutdown message from a supervisor."""
    if isinstance(message, bytes):
        message = message.decode("utf-8", errors="replace")
    return isinstance(message, str) and message.strip().lower() == SHUTDOWN_MESSAGE
