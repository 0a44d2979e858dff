"""Injectable timer scheduling.

Every delayed action in Chatline (reconnect delays, typing debounces)
goes through a Scheduler so timing can be driven by a virtual clock in
tests. Callbacks may be plain functions or return an awaitable; awaitable
results are run to completion by the scheduler.
"""

import asyncio
import heapq
import inspect
import itertools
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from chatline.observability.logging import get_logger

logger = get_logger(__name__)

Callback = Callable[[], Awaitable[None] | None]


class TimerHandle(ABC):
    """Handle to a scheduled callback."""

    @abstractmethod
    def cancel(self) -> None:
        """Prevent the callback from firing, or stop it if it is running."""
        pass

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        """Whether cancel() was called."""
        pass


class Scheduler(ABC):
    """Abstract timer scheduler."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        """Run callback after delay seconds."""
        pass

    @abstractmethod
    def time(self) -> float:
        """Current time on this scheduler's clock, in seconds."""
        pass

    async def aclose(self) -> None:
        """Cancel everything still outstanding."""
        return None


class _AsyncioTimerHandle(TimerHandle):
    def __init__(self) -> None:
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Future[None] | None = None
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Future[None]] = set()

    def time(self) -> float:
        return asyncio.get_running_loop().time()

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        handle = _AsyncioTimerHandle()
        handle._timer = asyncio.get_running_loop().call_later(
            max(delay, 0.0), self._fire, handle, callback
        )
        return handle

    def _fire(self, handle: _AsyncioTimerHandle, callback: Callback) -> None:
        if handle.cancelled:
            return
        result = callback()
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            handle._task = task
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Future[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("scheduled_callback_failed", error=str(exc))

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()


class _ManualTimerHandle(TimerHandle):
    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """Virtual-clock scheduler for tests and simulations.

    Nothing fires until advance() is awaited. Due callbacks run in due-time
    order (ties in scheduling order) and awaitable results are awaited
    inline, so a test observes every side effect once advance() returns.
    """

    def __init__(self) -> None:
        self._now = 0.0
        self._counter = itertools.count()
        self._queue: list[tuple[float, int, _ManualTimerHandle, Callback]] = []

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        handle = _ManualTimerHandle()
        due = self._now + max(delay, 0.0)
        heapq.heappush(self._queue, (due, next(self._counter), handle, callback))
        return handle

    @property
    def pending(self) -> int:
        """Number of scheduled callbacks not yet fired or cancelled."""
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    async def advance(self, seconds: float = 0.0) -> None:
        """Move the clock forward, firing every callback that becomes due."""
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = due
            result = callback()
            if inspect.isawaitable(result):
                await result
        self._now = target

    async def run_all(self, max_callbacks: int = 1000) -> None:
        """Fire callbacks until none remain."""
        for _ in range(max_callbacks):
            live = [entry for entry in self._queue if not entry[2].cancelled]
            if not live:
                return
            await self.advance(max(min(entry[0] for entry in live) - self._now, 0.0))
        raise RuntimeError("ManualScheduler.run_all exceeded max_callbacks")

    async def aclose(self) -> None:
        for _, _, handle, _ in self._queue:
            handle.cancel()
        self._queue.clear()
