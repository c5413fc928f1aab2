"""Typed domain events and the bus that delivers them."""

from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from hvac_bridge.logging_abstraction import get_logger

if TYPE_CHECKING:
    from hvac_bridge.structs import SessionInfo, SessionState

logger = get_logger(__name__)


@dataclass(frozen=True)
class DeviceBound:
    session: SessionInfo


@dataclass(frozen=True)
class StatusChanged:
    """A decoded property differs from its previously observed value.

    ``previous`` is None the first time the property is seen.
    """

    name: str
    value: str | int
    previous: str | int | None = None


@dataclass(frozen=True)
class SessionStateChanged:
    old: SessionState
    new: SessionState


Event = DeviceBound | StatusChanged | SessionStateChanged
Handler = Callable[[Any], Awaitable[None] | None]


class EventBus:
    """Synchronous publish, explicit subscription per event type.

    Plain handlers run inline, in subscription order. Coroutine handlers are
    scheduled as tasks on the running loop. A failing handler is logged and
    does not stop delivery to the others.
    """

    lp = "events:"

    def __init__(self) -> None:
        self._handlers: defaultdict[type, list[Handler]] = defaultdict(list)
        self._tasks: set[asyncio.Task[None]] = set()

    def subscribe(self, event_type: type, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``event_type``; returns an unsubscribe callable."""
        self._handlers[event_type].append(handler)

        def _unsubscribe() -> None:
            self.unsubscribe(event_type, handler)

        return _unsubscribe

    def unsubscribe(self, event_type: type, handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: Event) -> None:
        lp = f"{self.lp}publish:"
        for handler in list(self._handlers.get(type(event), [])):
            try:
                result = handler(event)
            except Exception:
                logger.exception("%s Handler %r failed for %s", lp, handler, type(event).__name__)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("%s Async handler failed: %s", self.lp, exc, extra={"error": type(exc).__name__})

    async def drain(self) -> None:
        """Wait for every scheduled coroutine handler to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
