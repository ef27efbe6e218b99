"""Data models for TimeTracker."""

from .entry import EndedReason, TimeEntry
from .project import Project
from .state import EngineState, ResumeContext

__all__ = ["EndedReason", "TimeEntry", "Project", "ResumeContext", "EngineState"]
