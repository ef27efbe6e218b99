"""Time sources and one-shot timers.

The engine never calls ``datetime.now()`` or starts threads directly, so tests
can drive it with a manual clock and scheduler.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Clock:
    """Source of the current local time."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now()


class TimerHandle:
    """A pending callback that can be cancelled."""

    def cancel(self) -> None:
        raise NotImplementedError


class Scheduler:
    """Runs a callback once after a delay."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError


class _ThreadingTimerHandle(TimerHandle):
    def __init__(self, timer: threading.Timer):
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()


class ThreadingScheduler(Scheduler):
    """Scheduler backed by daemon ``threading.Timer`` threads."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(max(0.0, delay), self._run, args=(callback,))
        timer.daemon = True
        timer.start()
        return _ThreadingTimerHandle(timer)

    @staticmethod
    def _run(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            logger.exception("Scheduled callback failed")


def cancel_quietly(handle: Optional[TimerHandle]) -> None:
    """Cancel a handle if there is one."""
    if handle is None:
        return
    try:
        handle.cancel()
    except Exception:
        logger.exception("Failed to cancel scheduled callback")
