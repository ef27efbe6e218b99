"""Time totals derived from the entry log.

Everything here is a pure function of its arguments: no I/O, no mutation.
Entries are treated as an unordered collection.
"""

from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Tuple

from timetracker.models.entry import TimeEntry

ONE_SECOND = timedelta(seconds=1)


def whole_seconds(span: timedelta) -> int:
    """Floor a timedelta to whole seconds, never below zero."""
    if span <= timedelta(0):
        return 0
    return span // ONE_SECOND


def start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min)


def find_running(entries: Iterable[TimeEntry]) -> Optional[TimeEntry]:
    """Get the open entry, if any."""
    return next((e for e in entries if e.end_at is None), None)


def running_seconds(entries: Iterable[TimeEntry], now: datetime) -> int:
    """Seconds elapsed in the running entry, or 0 when nothing runs."""
    running = find_running(entries)
    if running is None:
        return 0
    return whole_seconds(now - running.start_at)


def total_seconds_today(
    entries: Iterable[TimeEntry], project_id: str, now: datetime
) -> int:
    """Seconds tracked on a project since local midnight, counting open entries live."""
    midnight = start_of_day(now)
    total = timedelta(0)

    for entry in entries:
        if entry.project_id != project_id:
            continue
        end = entry.end_or(now)
        if end < midnight:
            continue
        span = end - max(entry.start_at, midnight)
        if span > timedelta(0):
            total += span

    return whole_seconds(total)


def total_seconds_all_time(
    entries: Iterable[TimeEntry], project_id: str, now: datetime
) -> int:
    """Seconds ever tracked on a project; each entry is clamped at zero."""
    total = timedelta(0)
    for entry in entries:
        if entry.project_id != project_id:
            continue
        span = entry.end_or(now) - entry.start_at
        if span > timedelta(0):
            total += span
    return whole_seconds(total)


def split_by_day(start: datetime, end: datetime) -> List[Tuple[date, timedelta]]:
    """Cut a span at each local midnight it crosses.

    Returns one ``(day, overlap)`` slice per calendar day touched. The slices
    add up to exactly ``end - start``. An empty or inverted span yields a single
    zero-length slice on the start day.
    """
    if end <= start:
        return [(start.date(), timedelta(0))]

    slices = []
    cursor = start
    while cursor < end:
        next_midnight = datetime.combine(cursor.date() + timedelta(days=1), time.min)
        slice_end = min(next_midnight, end)
        slices.append((cursor.date(), slice_end - cursor))
        cursor = slice_end
    return slices


def format_hms(total_seconds: int) -> str:
    """Format seconds as HH:MM:SS."""
    total_seconds = max(0, int(total_seconds))
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
