"""Project model for grouping tracked time."""

import uuid

from pydantic import BaseModel, Field


class Project(BaseModel):
    """A user-defined project that time entries are tracked against."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
