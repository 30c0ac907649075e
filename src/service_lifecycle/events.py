"""
Typed per-category event dispatch.

Each lifecycle category owns one ``EventDispatcher``. A dispatch call builds a
single immutable ``Event`` shared by every subscriber, invokes the subscribers
sequentially or concurrently, and folds their results with boolean AND.
Subscriber failures are caught at this boundary and count as ``False``.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import (
    Any,
    Awaitable,
    Callable,
    Generic,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
    TypeVar,
    Union,
)

from .enums import DispatchMode, EventCategory
from .logging import get_logger

logger = get_logger(__name__)

ArgsT = TypeVar("ArgsT", bound=Tuple[Any, ...])


@dataclass(frozen=True)
class RequestSnapshot:
    """Immutable copy of the request fields published with Request events."""

    method: str
    path: str
    query_string: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    client: Optional[str] = None
    user_agent: str = ""


# Payload shapes, one per category
LifecycleArgs = Tuple[()]
LogArgs = Tuple[Any, ...]
RequestArgs = Tuple[RequestSnapshot]


@dataclass(frozen=True)
class Event(Generic[ArgsT]):
    """A single dispatch, shared by all subscribers of that call."""

    category: EventCategory
    source: Any
    args: ArgsT
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[Event[ArgsT]], Union[bool, None, Awaitable[Any]]]


def _subscriber_name(callback: Callable[..., Any]) -> str:
    return getattr(callback, "__qualname__", None) or repr(callback)


class EventDispatcher(Generic[ArgsT]):
    """Fan-out of one event category to its subscribers.

    Sequential mode awaits every subscriber before invoking the next one.
    Concurrent mode starts every subscriber in registration order and waits
    for all of them together.
    """

    def __init__(
        self,
        source: Any,
        category: EventCategory,
        mode: Optional[DispatchMode] = None,
        subscribers: Optional[Union[Subscriber[ArgsT], Iterable[Subscriber[ArgsT]]]] = None,
    ):
        self.source = source
        self.category = category
        self.mode = DispatchMode(mode) if mode else DispatchMode.default_for(category)
        self._subscribers: List[Subscriber[ArgsT]] = []

        if callable(subscribers):
            self._subscribers.append(subscribers)
        elif subscribers:
            self._subscribers.extend(subscribers)

        self.logger = logger.bind(category=category.value, mode=self.mode.value)

    @property
    def subscribers(self) -> Tuple[Subscriber[ArgsT], ...]:
        return tuple(self._subscribers)

    def subscribe(self, callback: Subscriber[ArgsT]) -> None:
        """Append a subscriber; registration order is dispatch order."""
        if not callable(callback):
            raise TypeError(f"{self.category.value} subscriber must be callable")
        self._subscribers.append(callback)

    async def dispatch(self, args: Optional[ArgsT] = None) -> bool:
        """Invoke all subscribers and return the AND of their results.

        Args:
            args: Payload tuple for this category

        Returns:
            True when every subscriber succeeded (or none are registered)
        """
        event: Event[ArgsT] = Event(
            category=self.category,
            source=self.source,
            args=args if args is not None else (),  # type: ignore[arg-type]
        )
        subscribers = list(self._subscribers)

        if self.mode is DispatchMode.SEQUENTIAL:
            results = []
            for callback in subscribers:
                results.append(await self._invoke(event, callback))
        else:
            results = await asyncio.gather(
                *(self._invoke(event, callback) for callback in subscribers)
            )

        return all(results)

    def dispatch_nowait(self, args: Optional[ArgsT] = None) -> bool:
        """Invoke subscribers synchronously, in registration order.

        Used on paths that end the process right afterwards. Synchronous
        subscribers (the console sink among them) finish before this returns;
        awaitables returned by asynchronous subscribers are scheduled on the
        running loop, if any, but not awaited.
        """
        event: Event[ArgsT] = Event(
            category=self.category,
            source=self.source,
            args=args if args is not None else (),  # type: ignore[arg-type]
        )
        try:
            loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        results = []
        for callback in list(self._subscribers):
            try:
                result = callback(event)
            except Exception:
                self.logger.exception(
                    "Event subscriber raised", subscriber=_subscriber_name(callback)
                )
                results.append(False)
                continue

            if inspect.isawaitable(result):
                if loop is not None:
                    asyncio.ensure_future(result, loop=loop)
                elif inspect.iscoroutine(result):
                    result.close()
                results.append(True)
            else:
                results.append(result is not False)

        return all(results)

    async def _invoke(self, event: Event[ArgsT], callback: Subscriber[ArgsT]) -> bool:
        try:
            result = callback(event)
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            self.logger.exception(
                "Event subscriber raised", subscriber=_subscriber_name(callback)
            )
            return False

        return result is not False
