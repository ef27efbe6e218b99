"""Shared fixtures: a temp data directory, a manual clock and scheduler."""

import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from timetracker.config import TrackerSettings
from timetracker.core.clock import Clock, Scheduler, TimerHandle
from timetracker.core.engine import SessionEngine
from timetracker.core.store import JsonStore
from timetracker.hooks.activity import ActivityGate
from timetracker.hooks.prompt import ResumePrompt

START = datetime(2024, 1, 15, 9, 0, 0)


class ManualClock(Clock):
    def __init__(self, start: datetime = START):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


class ManualTimer(TimerHandle):
    def __init__(self, due: datetime, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Scheduler whose timers only fire when ``run_due`` is called."""

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self.timers: List[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = ManualTimer(self.clock.now() + timedelta(seconds=delay), callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]

    def run_due(self) -> int:
        fired = 0
        for timer in list(self.timers):
            if not timer.cancelled and timer.due <= self.clock.now():
                self.timers.remove(timer)
                timer.callback()
                fired += 1
        return fired


class RecordingPrompt(ResumePrompt):
    def __init__(self, fail: bool = False):
        super().__init__()
        self.fail = fail
        self.shown: List[tuple] = []

    def show(self, project_id: str, project_name: str) -> None:
        if self.fail:
            raise RuntimeError("notifications not permitted")
        self.shown.append((project_id, project_name))


@pytest.fixture
def data_dir():
    """Create a temporary data directory."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def gate():
    return ActivityGate()


@pytest.fixture
def prompt():
    return RecordingPrompt()


@pytest.fixture
def make_engine(data_dir, clock, scheduler):
    """Factory building engines over the shared data directory."""

    def factory(
        gate: Optional[ActivityGate] = None,
        prompt: Optional[ResumePrompt] = None,
        **settings,
    ) -> SessionEngine:
        return SessionEngine(
            JsonStore(data_dir),
            settings=TrackerSettings(data_dir=data_dir, **settings),
            clock=clock,
            scheduler=scheduler,
            gate=gate,
            prompt=prompt,
        )

    return factory
