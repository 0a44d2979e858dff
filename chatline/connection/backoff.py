"""Reconnection timing.

ReconnectPolicy decides how long to wait and whether to keep trying;
ReconnectBackoff applies a policy on a Scheduler and owns the single
pending reconnect timer.
"""

from abc import ABC, abstractmethod

from chatline.config.models.connection import ConnectionConfig
from chatline.runtime.scheduler import Callback, Scheduler, TimerHandle


class ReconnectPolicy(ABC):
    """Delay function and attempt limit for automatic reconnection."""

    @abstractmethod
    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before the given attempt (0-based)."""
        pass

    @abstractmethod
    def should_retry(self, attempt: int) -> bool:
        """Whether the given attempt (0-based) may be made."""
        pass


class FixedDelayPolicy(ReconnectPolicy):
    """Constant delay between attempts, optionally capped.

    The delay does not grow with the attempt number and carries no jitter.
    """

    def __init__(self, delay_seconds: float = 5.0, max_attempts: int | None = None) -> None:
        self.delay_seconds = delay_seconds
        self.max_attempts = max_attempts

    @classmethod
    def from_config(cls, config: ConnectionConfig) -> "FixedDelayPolicy":
        return cls(
            delay_seconds=config.reconnect_delay_seconds,
            max_attempts=config.max_reconnect_attempts,
        )

    def delay_for(self, attempt: int) -> float:  # noqa: ARG002
        return self.delay_seconds

    def should_retry(self, attempt: int) -> bool:
        return self.max_attempts is None or attempt < self.max_attempts


class ReconnectBackoff:
    """Attempt counter plus the one pending reconnect timer.

    schedule() supersedes any pending timer, so triggers never stack.
    """

    def __init__(self, scheduler: Scheduler, policy: ReconnectPolicy) -> None:
        self._scheduler = scheduler
        self._policy = policy
        self._handle: TimerHandle | None = None
        self._attempts = 0

    @property
    def attempts(self) -> int:
        """Attempts made since the last successful connection."""
        return self._attempts

    @property
    def pending(self) -> bool:
        return self._handle is not None and not self._handle.cancelled

    @property
    def exhausted(self) -> bool:
        return not self._policy.should_retry(self._attempts)

    def schedule(self, callback: Callback, delay: float | None = None) -> bool:
        """Arm the reconnect timer, replacing a pending one.

        Args:
            callback: Invoked when the timer fires
            delay: Override for the policy delay

        Returns:
            False when the policy allows no further attempts
        """
        self.cancel()
        if self.exhausted:
            return False
        wait = self._policy.delay_for(self._attempts) if delay is None else delay
        self._handle = self._scheduler.call_later(wait, self._fire(callback))
        return True

    def _fire(self, callback: Callback) -> Callback:
        def fire():  # type: ignore[no-untyped-def]
            self._handle = None
            return callback()

        return fire

    def cancel(self) -> bool:
        """Cancel the pending timer, returning whether one existed."""
        if self._handle is None:
            return False
        was_pending = not self._handle.cancelled
        self._handle.cancel()
        self._handle = None
        return was_pending

    def record_attempt(self) -> None:
        self._attempts += 1

    def reset(self) -> None:
        self._attempts = 0
