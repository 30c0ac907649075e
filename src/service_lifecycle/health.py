"""Health-check configuration, evaluation and response body."""

from __future__ import annotations

import inspect
import time
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Set, Union

import psutil
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import RunningState
from .logging import get_logger

logger = get_logger(__name__)

HealthPredicate = Callable[[Any], Union[bool, Awaitable[bool]]]

DEFAULT_HEALTH_CHECK_USER_AGENTS = (
    "GoogleHC/1.0",
    "Mozilla/5.0+(compatible; UptimeRobot/2.0; http://www.uptimerobot.com/)",
)


def normalize_string_set(value: Union[None, str, Iterable[str]]) -> Set[str]:
    """Accept a string or a collection of strings and return a set."""
    if value is None:
        return set()
    if isinstance(value, str):
        value = [value]
    return {item.strip() for item in value if item and item.strip()}


class HealthCheckConfig(BaseModel):
    """Which requests are answered by the health endpoint, and how health is judged.

    ``checks`` are extra predicates evaluated per health request on top of the
    built-in "state is listening" check. Each receives the inbound request and
    may return a bool or an awaitable bool.
    """

    model_config = ConfigDict(validate_assignment=True, arbitrary_types_allowed=True)

    match_user_agents: Set[str] = Field(
        default_factory=lambda: set(DEFAULT_HEALTH_CHECK_USER_AGENTS)
    )
    match_paths: Set[str] = Field(default_factory=set)
    checks: List[HealthPredicate] = Field(default_factory=list)

    @field_validator("match_user_agents", "match_paths", mode="before")
    @classmethod
    def _normalize_matchers(cls, value: Any) -> Set[str]:
        return normalize_string_set(value)

    def add_check(self, check: HealthPredicate) -> None:
        if not callable(check):
            raise TypeError("health check must be callable")
        self.checks.append(check)

    def matches(self, user_agent: Optional[str], path: str) -> bool:
        """Return True when the request should get the health response."""
        if user_agent and user_agent in self.match_user_agents:
            return True
        return path in self.match_paths


class HealthReport(BaseModel):
    """Body of the health-check response."""

    healthy: bool = Field(description="Whether every health predicate passed")
    state: RunningState = Field(description="Current lifecycle state")
    uptime: float = Field(description="Process uptime in seconds", ge=0)


def process_uptime() -> float:
    """Seconds since this process was created."""
    created = psutil.Process().create_time()
    return max(0.0, time.time() - created)


async def evaluate_health(
    state: RunningState, checks: Iterable[HealthPredicate], request: Any
) -> bool:
    """Run the default predicate and every configured check.

    A check that raises counts as unhealthy.
    """
    if state is not RunningState.LISTENING:
        return False

    for check in list(checks):
        try:
            result = check(request)
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            logger.exception("Health check raised", check=getattr(check, "__qualname__", repr(check)))
            return False
        if not result:
            return False

    return True
