"""Time sources and delayed callbacks."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

logger = logging.getLogger(__name__)

AsyncCallback = Callable[[], Awaitable[None]]


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime:
        """Return the current aware UTC datetime."""


class TimerHandle(Protocol):
    """Handle to a scheduled callback."""

    def cancel(self) -> None:
        """Prevent the callback from running if it has not run yet."""


class Scheduler(Protocol):
    """Runs async callbacks after a delay."""

    def call_later(self, delay: float, callback: AsyncCallback) -> TimerHandle:
        """Schedule the callback and return a cancelable handle."""


class SystemClock(Clock):
    """Wall clock in UTC."""

    def now(self) -> datetime:
        """Return the current UTC time."""
        return datetime.now(tz=UTC)


@dataclass
class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    _tasks: set[asyncio.Task[None]] = field(default_factory=set)

    def call_later(self, delay: float, callback: AsyncCallback) -> TimerHandle:
        """Schedule the callback on the running loop."""
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, self._spawn, callback)

    def _spawn(self, callback: AsyncCallback) -> None:
        task = asyncio.ensure_future(callback())
        self._tasks.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Scheduled callback failed", exc_info=exc)

    async def drain(self) -> None:
        """Wait for callbacks that already started."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
