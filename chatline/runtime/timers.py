"""Restartable timers built on a Scheduler."""

from collections.abc import Awaitable

from chatline.runtime.scheduler import Callback, Scheduler, TimerHandle


class Debouncer:
    """Single-shot timer where each trigger supersedes the pending one.

    At most one handle is outstanding. cancel() makes a pending fire a
    no-op, which is what teardown relies on.
    """

    def __init__(self, scheduler: Scheduler, delay: float, callback: Callback) -> None:
        self._scheduler = scheduler
        self._delay = delay
        self._callback = callback
        self._handle: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None and not self._handle.cancelled

    def trigger(self) -> None:
        """(Re)start the timer."""
        self.cancel()
        self._handle = self._scheduler.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> Awaitable[None] | None:
        self._handle = None
        return self._callback()

