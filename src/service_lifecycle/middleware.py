"""Request-boundary gate installed in front of the wrapped web application."""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Dict

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .enums import RunningState
from .events import RequestSnapshot

if TYPE_CHECKING:
    from .application import Application


def snapshot_request(request: Request) -> RequestSnapshot:
    """Copy the request fields published with Request events."""
    client = f"{request.client.host}:{request.client.port}" if request.client else None
    return RequestSnapshot(
        method=request.method,
        path=request.url.path,
        query_string=request.url.query,
        headers=MappingProxyType(dict(request.headers)),
        client=client,
        user_agent=request.headers.get("user-agent", ""),
    )


class LifecycleGateMiddleware(BaseHTTPMiddleware):
    """Health-check short circuit plus readiness gating.

    Health requests (matched by user agent or path) are answered here and never
    reach routing. Everything else gets the banner header, ``Connection: close``
    while shutting down, and a 503 until the service is ready.
    """

    def __init__(self, app, lifecycle: "Application"):
        super().__init__(app)
        self.lifecycle = lifecycle

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        lifecycle = self.lifecycle

        user_agent = request.headers.get("user-agent", "")
        if lifecycle.health_check.matches(user_agent, request.url.path):
            return await self._health_response(request)

        lifecycle.emit_request(snapshot_request(request))

        headers: Dict[str, str] = {}
        if lifecycle.banner:
            headers["Server"] = lifecycle.banner
        if lifecycle.running_state is RunningState.SHUTTING_DOWN:
            headers["Connection"] = "close"

        if not lifecycle.is_ready:
            return Response(status_code=503, headers=headers)

        response = await call_next(request)
        response.headers.update(headers)
        return response

    async def _health_response(self, request: Request) -> Response:
        report = await self.lifecycle.health_report(request)
        return JSONResponse(
            report.model_dump(mode="json"),
            status_code=200 if report.healthy else 503,
        )
