"""Runtime primitives: timer scheduling and debouncing."""

from chatline.runtime.scheduler import (
    AsyncioScheduler,
    Callback,
    ManualScheduler,
    Scheduler,
    TimerHandle,
)
from chatline.runtime.timers import Debouncer

__all__ = [
    "AsyncioScheduler",
    "Callback",
    "Debouncer",
    "ManualScheduler",
    "Scheduler",
    "TimerHandle",
]
