"""CSV reports built from the entry log.

Summary reports group day slices of every entry into buckets. Which keys make
up a bucket, and the column and sort order, depend on the report variant:

    daily             date                  sorted by date
    project-day-task  project, date, task   sorted by project, date, task
    project-task      project, task         sorted by project, task
    project-note      project, note         sorted by project, note

Project and task ordering is case-insensitive with ties broken by the raw
value. Blank notes are reported as ``(no task)`` in every variant. Hours are
rounded half away from zero to three decimals; the exact whole seconds are
kept in their own column.
"""

import csv
import io
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel

from timetracker.core.aggregation import split_by_day, whole_seconds
from timetracker.models.entry import TimeEntry
from timetracker.models.project import Project

NO_TASK = "(no task)"
UNKNOWN_PROJECT = "Unknown"
EXPORT_TIME_FORMAT = "%Y-%m-%d %H:%M"
EXPORT_STAMP_FORMAT = "%Y%m%d-%H%M%S"

_THOUSANDTH = Decimal("0.001")
_SECONDS_PER_HOUR = Decimal(3600)


class ReportVariant(str, Enum):
    """Named grouping of a summary report."""

    DAILY = "daily"
    PROJECT_DAY_TASK = "project-day-task"
    PROJECT_TASK = "project-task"
    PROJECT_NOTE = "project-note"

    @property
    def keys(self) -> Tuple[str, ...]:
        return _VARIANT_KEYS[self]

    @property
    def columns(self) -> List[str]:
        return list(self.keys) + ["seconds", "hours"]


_VARIANT_KEYS: Dict[ReportVariant, Tuple[str, ...]] = {
    ReportVariant.DAILY: ("date",),
    ReportVariant.PROJECT_DAY_TASK: ("project", "date", "task"),
    ReportVariant.PROJECT_TASK: ("project", "task"),
    ReportVariant.PROJECT_NOTE: ("project", "note"),
}


class SummaryRow(BaseModel):
    """One bucket of a summary report."""

    project: Optional[str] = None
    day: Optional[date] = None
    task: Optional[str] = None
    seconds: int

    @property
    def hours(self) -> str:
        return format_hours(self.seconds)

    def values(self, variant: ReportVariant) -> List[str]:
        cells = []
        for key in variant.keys:
            if key == "project":
                cells.append(self.project or UNKNOWN_PROJECT)
            elif key == "date":
                cells.append(self.day.isoformat() if self.day else "")
            else:
                cells.append(self.task or NO_TASK)
        return cells + [str(self.seconds), self.hours]


def format_hours(seconds: int) -> str:
    """Hours with three decimals, ties rounded away from zero, '.' separator."""
    hours = Decimal(int(seconds)) / _SECONDS_PER_HOUR
    return str(hours.quantize(_THOUSANDTH, rounding=ROUND_HALF_UP))


def project_names(projects: Iterable[Project]) -> Dict[str, str]:
    return {p.id: p.name for p in projects}


def task_label(note: Optional[str]) -> str:
    trimmed = (note or "").strip()
    return trimmed if trimmed else NO_TASK


def summarize(
    entries: Iterable[TimeEntry],
    projects: Iterable[Project],
    variant: ReportVariant,
    now: datetime,
    project_id: Optional[str] = None,
) -> List[SummaryRow]:
    """Group day slices of all entries into report rows, sorted per variant."""
    names = project_names(projects)
    keys = variant.keys
    buckets: Dict[tuple, timedelta] = {}

    for entry in entries:
        if project_id is not None and entry.project_id != project_id:
            continue
        task = task_label(entry.note)
        for day, span in split_by_day(entry.start_at, entry.end_or(now)):
            bucket = (
                entry.project_id if "project" in keys else None,
                day if "date" in keys else None,
                task if ("task" in keys or "note" in keys) else None,
            )
            buckets[bucket] = buckets.get(bucket, timedelta(0)) + span

    rows = [
        SummaryRow(
            project=names.get(pid, UNKNOWN_PROJECT) if "project" in keys else None,
            day=day,
            task=task,
            seconds=whole_seconds(span),
        )
        for (pid, day, task), span in buckets.items()
    ]
    rows.sort(key=_row_sort_key)
    return rows


def _row_sort_key(row: SummaryRow) -> tuple:
    # Missing keys are None on every row of a variant, so they never compare.
    project = row.project or ""
    task = row.task or ""
    return (
        project.casefold(),
        project,
        row.day or date.min,
        task.casefold(),
        task,
    )


def render_csv(header: List[str], rows: Iterable[List[str]]) -> str:
    """Render rows as CSV text with '\\n' line endings and a trailing newline.

    Fields containing a comma, quote, CR or LF are quoted.
    """
    lines = [_render_row(header)]
    lines.extend(_render_row(row) for row in rows)
    return "".join(lines)


def _render_row(row: List[str]) -> str:
    # A "\r\n" terminator makes the writer quote lone CRs as well as LFs.
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\r\n", quoting=csv.QUOTE_MINIMAL).writerow(row)
    return buffer.getvalue()[:-2] + "\n"


def summary_csv(
    entries: Iterable[TimeEntry],
    projects: Iterable[Project],
    variant: ReportVariant,
    now: datetime,
    project_id: Optional[str] = None,
) -> str:
    """Build the CSV text of a summary report."""
    rows = summarize(entries, projects, variant, now, project_id=project_id)
    return render_csv(variant.columns, (row.values(variant) for row in rows))


def entries_csv(
    entries: Iterable[TimeEntry],
    projects: Iterable[Project],
    project_id: Optional[str] = None,
) -> str:
    """Build a CSV of completed entries, oldest first.

    Columns: project,task,start,end,hours. Running entries are left out.
    """
    names = project_names(projects)
    completed = [
        e
        for e in entries
        if e.end_at is not None and (project_id is None or e.project_id == project_id)
    ]
    completed.sort(key=lambda e: e.start_at)

    rows = (
        [
            names.get(e.project_id, UNKNOWN_PROJECT),
            task_label(e.note),
            e.start_at.strftime(EXPORT_TIME_FORMAT),
            e.end_at.strftime(EXPORT_TIME_FORMAT),
            format_hours(whole_seconds(e.end_at - e.start_at)),
        ]
        for e in completed
    )
    return render_csv(["project", "task", "start", "end", "hours"], rows)


def export_path(data_dir: Path, prefix: str, now: datetime) -> Path:
    """Timestamped CSV filename inside the data directory."""
    return Path(data_dir) / f"{prefix}-{now.strftime(EXPORT_STAMP_FORMAT)}.csv"


def write_csv(path: Path, text: str) -> Path:
    """Write CSV text as UTF-8, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(text)
    return path
