"""Tests for the Project and TimeEntry models."""

from datetime import datetime

import pytest

from timetracker.models import EndedReason, Project, TimeEntry


def test_project_gets_unique_id():
    """Test that new projects get distinct ids."""
    a = Project(name="Alpha")
    b = Project(name="Alpha")
    assert a.id != b.id


def test_entry_accepts_camel_case_and_snake_case():
    """Test that both on-disk and Python field names load."""
    start = datetime(2024, 1, 1, 9, 0)
    camel = TimeEntry.model_validate({"projectId": "p1", "startAt": start.isoformat()})
    snake = TimeEntry(project_id="p1", start_at=start)

    assert camel.project_id == snake.project_id == "p1"
    assert camel.start_at == snake.start_at == start
    assert camel.note is None
    assert camel.is_running


def test_entry_closes_exactly_once():
    """Test that an entry's end is set once and never reset."""
    entry = TimeEntry(project_id="p1", start_at=datetime(2024, 1, 1, 9, 0))
    end = datetime(2024, 1, 1, 10, 0)

    entry.close(end, EndedReason.USER)
    assert entry.end_at == end
    assert entry.ended_reason == EndedReason.USER
    assert not entry.is_running

    with pytest.raises(ValueError, match="already closed"):
        entry.close(datetime(2024, 1, 1, 11, 0), EndedReason.SYSTEM)
    assert entry.end_at == end
    assert entry.ended_reason == EndedReason.USER


def test_entry_duration_counts_open_entries_up_to_now():
    """Test duration of open and closed entries."""
    entry = TimeEntry(project_id="p1", start_at=datetime(2024, 1, 1, 9, 0))
    assert entry.duration(datetime(2024, 1, 1, 9, 30)) == 1800
    # Clock behind the start never yields a negative duration
    assert entry.duration(datetime(2024, 1, 1, 8, 0)) == 0

    entry.close(datetime(2024, 1, 1, 10, 0), EndedReason.SYSTEM)
    assert entry.duration(datetime(2024, 1, 2, 0, 0)) == 3600


def test_trimmed_note():
    entry = TimeEntry(project_id="p1", start_at=datetime(2024, 1, 1), note="  write docs ")
    assert entry.trimmed_note == "write docs"
    assert TimeEntry(project_id="p1", start_at=datetime(2024, 1, 1)).trimmed_note == ""
