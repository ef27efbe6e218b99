"""Time entry model for the append-only entry log."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class EndedReason(str, Enum):
    """Why a time entry was closed."""

    USER = "user"
    SYSTEM = "system"


class TimeEntry(BaseModel):
    """One contiguous span of tracked time against a project.

    ``end_at`` is unset only while the entry is the running one. It is set
    once, together with ``ended_reason``, and never reset.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    project_id: str = Field(alias="projectId")
    start_at: datetime = Field(alias="startAt")
    end_at: Optional[datetime] = Field(default=None, alias="endAt")
    ended_reason: Optional[EndedReason] = Field(default=None, alias="endedReason")
    note: Optional[str] = None

    model_config = {"populate_by_name": True}

    @field_validator("start_at", "end_at")
    @classmethod
    def to_local_naive(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Store offset timestamps (e.g. a trailing Z) as naive local time."""
        if value is not None and value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value

    @property
    def is_running(self) -> bool:
        """Check if the entry is still open."""
        return self.end_at is None

    @property
    def trimmed_note(self) -> str:
        return (self.note or "").strip()

    def end_or(self, now: datetime) -> datetime:
        """Get the end of the entry, using ``now`` for an open entry."""
        return self.end_at if self.end_at is not None else now

    def duration(self, now: datetime) -> float:
        """Get entry duration in seconds, counting open entries up to ``now``."""
        return max(0.0, (self.end_or(now) - self.start_at).total_seconds())

    def close(self, at: datetime, reason: EndedReason) -> None:
        """Close the entry. An entry can only be closed once."""
        if self.end_at is not None:
            raise ValueError(f"Entry {self.id} is already closed")
        self.end_at = at
        self.ended_reason = reason
