"""HTTP listener serving the wrapped ASGI application with uvicorn."""

from __future__ import annotations

import asyncio
import socket
from typing import Optional

import uvicorn

from ..enums import ListenerKind, ListenerState
from ..exceptions import ListenerBindError
from ..logging import get_logger
from .base import DEFAULT_LISTENER_SHUTDOWN_TIMEOUT_MS, GracefulShutdown, ListenerOwner

logger = get_logger(__name__)


class HTTPListener:
    """Serves ``owner.web_app`` on one host/port.

    The socket is bound here rather than by uvicorn so that a bind failure is
    reported as a listener error instead of exiting the process. uvicorn's
    ``serve()`` is not used because it installs its own signal handlers; the
    startup, tick loop and shutdown steps are driven directly.
    """

    kind = ListenerKind.HTTP
    scheme = "http"
    default_port = 80

    def __init__(
        self,
        owner: ListenerOwner,
        host: str,
        port: int,
        domain: Optional[str] = None,
        shutdown_timeout_ms: int = DEFAULT_LISTENER_SHUTDOWN_TIMEOUT_MS,
        backlog: int = 2048,
    ):
        self.owner = owner
        self.host = host
        self.port = port
        self.domain = domain
        self.shutdown_timeout_ms = shutdown_timeout_ms
        self.backlog = backlog
        self.state = ListenerState.INITIALISING

        self._socket: Optional[socket.socket] = None
        self._server: Optional[uvicorn.Server] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._graceful = GracefulShutdown(self, owner)

    def __repr__(self) -> str:
        return f"HTTPListener(address={self.listening_address()!r}, state={self.state.value!r})"

    @property
    def is_serving(self) -> bool:
        return self._server is not None

    def listening_address(self) -> str:
        address = f"{self.scheme}://{self.domain or self.host}"
        if self.port != self.default_port:
            address = f"{address}:{self.port}"
        return address + "/"

    async def start(self) -> bool:
        if self.state is not ListenerState.INITIALISING:
            return self.state is ListenerState.LISTENING

        try:
            sock = self._bind()
        except (OSError, OverflowError) as exc:
            return self._fail(exc)

        try:
            await self._startup(sock)
        except Exception as exc:
            logger.exception("HTTP server startup failed", address=self.listening_address())
            sock.close()
            return self._fail(exc)

        self.state = ListenerState.LISTENING
        self.owner.info(f"{self.owner.banner_text()} listening at {self.listening_address()}")
        return True

    async def close(self) -> None:
        server = self._server
        if server is None:
            return

        server.should_exit = True
        if self._tick_task is not None:
            await self._tick_task
            self._tick_task = None

        sockets = [self._socket] if self._socket is not None else None
        await server.shutdown(sockets=sockets)
        self._server = None
        self._socket = None
        logger.info("HTTP listener closed", address=self.listening_address())

    async def shutdown(self) -> bool:
        return await self._graceful.run()

    def _bind(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.create_server((self.host, self.port), family=family, backlog=self.backlog)
        if self.port == 0:
            self.port = sock.getsockname()[1]
        return sock

    async def _startup(self, sock: socket.socket) -> None:
        config = uvicorn.Config(
            self.owner.web_app,
            lifespan="off",
            log_config=None,
            access_log=False,
            server_header=False,
            backlog=self.backlog,
        )
        config.load()

        server = uvicorn.Server(config)
        server.lifespan = config.lifespan_class(config)
        await server.startup(sockets=[sock])
        if server.should_exit:
            raise RuntimeError("HTTP server refused to start")

        self._socket = sock
        self._server = server
        self._tick_task = asyncio.create_task(server.main_loop())

    def _fail(self, exc: Exception) -> bool:
        self.state = ListenerState.ERROR
        error = ListenerBindError(
            f"Unable to start {self.owner.banner_text()} listener at {self.listening_address()}",
            details={"reason": str(exc)},
            address=self.listening_address(),
        )
        logger.error(error.message, error=error.to_dict())
        self.owner.error(error.message, str(exc))
        return False
