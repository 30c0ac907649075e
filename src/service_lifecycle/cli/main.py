"""Root Click group for the service lifecycle CLI."""

from __future__ import annotations

import asyncio
from typing import Optional, Tuple

import click
from fastapi import FastAPI

from ..application import Application
from ..config import LifecycleSettings
from ..events import Event
from ..logging import get_logger, setup_logging


@click.group()
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    help="Overrides LIFECYCLE_LOG_LEVEL",
)
@click.option(
    "--log-format",
    default=None,
    type=click.Choice(["console", "json"]),
    help="Overrides LIFECYCLE_LOG_FORMAT",
)
@click.pass_context
def main(ctx: click.Context, log_level: Optional[str], log_format: Optional[str]) -> None:
    """Service lifecycle CLI - run a lifecycle-managed demo service."""
    ctx.ensure_object(dict)

    settings = LifecycleSettings()
    ctx.obj["settings"] = settings

    setup_logging(
        log_level=log_level or settings.log_level,
        log_format=log_format or settings.log_format,
    )


def build_demo_app(lifecycle: Application, countdown: int) -> FastAPI:
    """Attach the demo routes and countdown hooks to ``lifecycle``."""
    logger = get_logger(__name__)
    app = lifecycle.web_app

    @app.get("/")
    async def hello() -> dict:
        return {"message": f"Hello from {lifecycle.banner_text()}"}

    async def count_down(label: str) -> bool:
        for remaining in range(countdown, 0, -1):
            logger.info(f"{label} countdown", remaining=remaining)
            await asyncio.sleep(0.1)
        return True

    @lifecycle.on_startup
    async def warm_up(event: Event) -> bool:
        return await count_down("Startup")

    @lifecycle.on_listening
    def announce(event: Event) -> None:
        for listener in lifecycle.active_listeners():
            click.echo(f"Serving {listener.listening_address()}")

    @lifecycle.on_shutdown
    async def drain(event: Event) -> bool:
        return await count_down("Shutdown")

    @lifecycle.on_shutdown
    async def close_listeners(event: Event) -> bool:
        return await lifecycle.shutdown_listeners()

    return app


@main.command()
@click.option("--host", default=None, help="Interface to bind (default from settings)")
@click.option("--port", default=None, type=int, help="Port to bind (default PORT or 8080)")
@click.option("--banner", default=None, help="Banner used in messages and the Server header")
@click.option("--shutdown-timeout-ms", default=None, type=click.IntRange(min=1))
@click.option("--health-path", "health_paths", multiple=True, help="Path answered by the health check")
@click.option("--health-user-agent", "health_user_agents", multiple=True, help="User agent answered by the health check")
@click.option("--countdown", default=3, show_default=True, type=click.IntRange(min=0))
@click.pass_context
def serve(
    ctx: click.Context,
    host: Optional[str],
    port: Optional[int],
    banner: Optional[str],
    shutdown_timeout_ms: Optional[int],
    health_paths: Tuple[str, ...],
    health_user_agents: Tuple[str, ...],
    countdown: int,
) -> None:
    """Start the demo service and run until SIGTERM/SIGINT."""
    settings: LifecycleSettings = ctx.obj["settings"]
    logger = get_logger(__name__)

    health_check = settings.health_check_config()
    if health_paths:
        health_check.match_paths = set(health_paths)
    if health_user_agents:
        health_check.match_user_agents = set(health_user_agents)

    lifecycle = Application(
        settings=settings,
        banner=banner or settings.banner or "ServiceLifecycleDemo/1.0",
        use_console=True,
        shutdown_timeout_ms=shutdown_timeout_ms,
        health_check=health_check,
    )
    build_demo_app(lifecycle, countdown)
    lifecycle.add_listener(port=port, host=host)

    logger.info("Starting demo service", host=host or settings.host, port=port or settings.port)
    exit_code = lifecycle.run()
    if exit_code is not None:
        ctx.exit(int(exit_code))


if __name__ == "__main__":  # pragma: no cover
    main()  # pylint: disable=no-value-for-parameter
