"""In-memory engine state models. Neither of these is ever persisted."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from .entry import TimeEntry
from .project import Project


class ResumeContext(BaseModel):
    """What was auto-stopped, and how often the user has been asked to resume."""

    project_id: str
    note: Optional[str] = None
    stopped_at: datetime
    last_prompt_at: Optional[datetime] = None
    has_retried: bool = False


class EngineState(BaseModel):
    """Read-only snapshot of the session engine handed to observers."""

    projects: List[Project] = []
    entries: List[TimeEntry] = []
    selected_project_id: Optional[str] = None
    current_note: str = ""
    running_entry_id: Optional[str] = None
    resume_context: Optional[ResumeContext] = None

    model_config = {"frozen": True}

    @property
    def running_entry(self) -> Optional[TimeEntry]:
        if self.running_entry_id is None:
            return None
        return next(
            (
                e
                for e in self.entries
                if e.id == self.running_entry_id and e.end_at is None
            ),
            None,
        )

    @property
    def is_running(self) -> bool:
        return self.running_entry is not None
