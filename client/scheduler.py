import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Set

import structlog

logger = structlog.get_logger()

TimerCallback = Callable[[], Awaitable[None]]


class Timer(ABC):
    @abstractmethod
    def cancel(self) -> None:
        """Stops the timer if it has not fired yet. Safe to call more than once."""
        pass


class Scheduler(ABC):
    @abstractmethod
    def call_later(self, delay: float, callback: TimerCallback) -> Timer:
        """Runs the coroutine returned by callback once, after delay seconds."""
        pass


class _AsyncioTimer(Timer):
    def __init__(self, handle: asyncio.TimerHandle):
        self.handle = handle

    def cancel(self) -> None:
        # Only the pending wake-up is cancelled; a query already running completes
        self.handle.cancel()


class AsyncioScheduler(Scheduler):
    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop
        # Strong references so fired callbacks are not garbage collected mid-flight
        self._tasks: Set[asyncio.Task] = set()

    def call_later(self, delay: float, callback: TimerCallback) -> Timer:
        loop = self.loop or asyncio.get_running_loop()

        def fire():
            task = loop.create_task(callback())
            self._tasks.add(task)
            task.add_done_callback(self._finished)

        return _AsyncioTimer(loop.call_later(delay, fire))

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("timer_callback_failed", error=str(task.exception()), exc_info=task.exception())
