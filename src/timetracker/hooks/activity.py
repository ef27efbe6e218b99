"""Activity gate: inbound "paused" / "resumed" signals from the OS.

Platform watchers (sleep, lock, screensaver) call ``pause()`` and ``resume()``.
The gate may report one real pause several times; coalescing is up to the
subscriber.
"""

import logging
import signal
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ActivityGate:
    """Fan-out point for pause and resume signals."""

    def __init__(self):
        self._pause_listeners: List[Listener] = []
        self._resume_listeners: List[Listener] = []

    def on_pause(self, callback: Listener) -> Callable[[], None]:
        """Register a pause listener; returns a function that unregisters it."""
        self._pause_listeners.append(callback)
        return lambda: self._remove(self._pause_listeners, callback)

    def on_resume(self, callback: Listener) -> Callable[[], None]:
        """Register a resume listener; returns a function that unregisters it."""
        self._resume_listeners.append(callback)
        return lambda: self._remove(self._resume_listeners, callback)

    def pause(self) -> None:
        logger.debug("Activity paused")
        self._dispatch(self._pause_listeners)

    def resume(self) -> None:
        logger.debug("Activity resumed")
        self._dispatch(self._resume_listeners)

    @staticmethod
    def _remove(listeners: List[Listener], callback: Listener) -> None:
        if callback in listeners:
            listeners.remove(callback)

    @staticmethod
    def _dispatch(listeners: List[Listener]) -> None:
        for callback in list(listeners):
            try:
                callback()
            except Exception:
                logger.exception("Activity listener failed")


class SignalActivityGate(ActivityGate):
    """Gate driven by POSIX signals.

    SIGUSR1 means paused and SIGUSR2 means resumed, so sleep/lock hooks such
    as ``sleepwatcher`` or ``xss-lock`` can notify a running tracker with
    ``kill -USR1 <pid>``. Must be installed from the main thread.

    Signal handlers interrupt whatever the main thread is doing, so with a
    ``marshal`` function the pause/resume call is handed to it (for example
    ``queue.SimpleQueue.put``) instead of being run inside the handler.
    """

    PAUSE_SIGNAL = getattr(signal, "SIGUSR1", None)
    RESUME_SIGNAL = getattr(signal, "SIGUSR2", None)

    def __init__(self, marshal: Optional[Callable[[Listener], None]] = None):
        super().__init__()
        self._marshal = marshal
        self._previous = {}

    @classmethod
    def is_supported(cls) -> bool:
        return cls.PAUSE_SIGNAL is not None and cls.RESUME_SIGNAL is not None

    def install(self) -> None:
        if not self.is_supported():
            raise RuntimeError("SIGUSR1/SIGUSR2 are not available on this platform")
        self._previous[self.PAUSE_SIGNAL] = signal.signal(
            self.PAUSE_SIGNAL, lambda signum, frame: self._deliver(self.pause)
        )
        self._previous[self.RESUME_SIGNAL] = signal.signal(
            self.RESUME_SIGNAL, lambda signum, frame: self._deliver(self.resume)
        )

    def uninstall(self) -> None:
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()

    def _deliver(self, dispatch: Listener) -> None:
        if self._marshal is not None:
            self._marshal(dispatch)
        else:
            dispatch()
