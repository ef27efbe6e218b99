"""Tests for CSV summaries and entry exports."""

import csv
import io
from datetime import datetime
from pathlib import Path

from timetracker.core.reports import (
    NO_TASK,
    ReportVariant,
    entries_csv,
    export_path,
    format_hours,
    render_csv,
    summarize,
    summary_csv,
    write_csv,
)
from timetracker.models import EndedReason, Project, TimeEntry

NOW = datetime(2024, 1, 3, 12, 0)


def closed(project_id, start, end, note=None):
    return TimeEntry(
        project_id=project_id,
        start_at=start,
        end_at=end,
        ended_reason=EndedReason.USER,
        note=note,
    )


def parse(text):
    return list(csv.reader(io.StringIO(text)))


class TestFormatHours:
    def test_half_hour(self):
        assert format_hours(5400) == "1.500"

    def test_whole_hours_keep_three_decimals(self):
        assert format_hours(3600) == "1.000"
        assert format_hours(0) == "0.000"

    def test_ties_round_away_from_zero(self):
        # 9 s = 0.0025 h
        assert format_hours(9) == "0.003"
        # 1 s = 0.000277... h
        assert format_hours(1) == "0.000"
        assert format_hours(2) == "0.001"


class TestDaySlicing:
    def test_overnight_entry_becomes_two_days(self):
        """23:00 to 01:00 is one hour on each day."""
        project = Project(name="Alpha")
        entries = [closed(project.id, datetime(2024, 1, 1, 23), datetime(2024, 1, 2, 1))]

        text = summary_csv(entries, [project], ReportVariant.DAILY, NOW)
        assert parse(text) == [
            ["date", "seconds", "hours"],
            ["2024-01-01", "3600", "1.000"],
            ["2024-01-02", "3600", "1.000"],
        ]

    def test_slices_keep_the_total(self):
        project = Project(name="Alpha")
        start = datetime(2024, 1, 1, 20, 17, 3)
        end = datetime(2024, 1, 3, 2, 41, 58)
        rows = summarize(
            [closed(project.id, start, end)], [project], ReportVariant.DAILY, NOW
        )
        assert len(rows) == 3
        assert sum(r.seconds for r in rows) == int((end - start).total_seconds())

    def test_open_entry_counts_up_to_now(self):
        project = Project(name="Alpha")
        entries = [TimeEntry(project_id=project.id, start_at=datetime(2024, 1, 2, 22), note="x")]
        rows = summarize(entries, [project], ReportVariant.DAILY, NOW)
        assert [(r.day.isoformat(), r.seconds) for r in rows] == [
            ("2024-01-02", 7200),
            ("2024-01-03", 12 * 3600),
        ]


class TestVariants:
    def setup_method(self):
        self.beta = Project(name="beta")
        self.alpha = Project(name="Alpha")
        self.projects = [self.beta, self.alpha]
        self.entries = [
            closed(self.beta.id, datetime(2024, 1, 2, 9), datetime(2024, 1, 2, 10), "code"),
            closed(self.alpha.id, datetime(2024, 1, 2, 9), datetime(2024, 1, 2, 9, 30), "review"),
            closed(self.alpha.id, datetime(2024, 1, 1, 9), datetime(2024, 1, 1, 10), "review"),
            closed(self.alpha.id, datetime(2024, 1, 1, 11), datetime(2024, 1, 1, 11, 30), "Admin"),
            closed(self.alpha.id, datetime(2024, 1, 2, 11), datetime(2024, 1, 2, 11, 15), "  "),
        ]

    def test_project_day_task(self):
        rows = parse(summary_csv(self.entries, self.projects, ReportVariant.PROJECT_DAY_TASK, NOW))
        assert rows == [
            ["project", "date", "task", "seconds", "hours"],
            ["Alpha", "2024-01-01", "Admin", "1800", "0.500"],
            ["Alpha", "2024-01-01", "review", "3600", "1.000"],
            ["Alpha", "2024-01-02", NO_TASK, "900", "0.250"],
            ["Alpha", "2024-01-02", "review", "1800", "0.500"],
            ["beta", "2024-01-02", "code", "3600", "1.000"],
        ]

    def test_project_task(self):
        rows = parse(summary_csv(self.entries, self.projects, ReportVariant.PROJECT_TASK, NOW))
        assert rows == [
            ["project", "task", "seconds", "hours"],
            ["Alpha", NO_TASK, "900", "0.250"],
            ["Alpha", "Admin", "1800", "0.500"],
            ["Alpha", "review", "5400", "1.500"],
            ["beta", "code", "3600", "1.000"],
        ]

    def test_project_note_uses_note_column(self):
        rows = parse(summary_csv(self.entries, self.projects, ReportVariant.PROJECT_NOTE, NOW))
        assert rows[0] == ["project", "note", "seconds", "hours"]
        assert ["Alpha", "review", "5400", "1.500"] in rows

    def test_daily(self):
        rows = parse(summary_csv(self.entries, self.projects, ReportVariant.DAILY, NOW))
        assert rows == [
            ["date", "seconds", "hours"],
            ["2024-01-01", "5400", "1.500"],
            ["2024-01-02", "6300", "1.750"],
        ]

    def test_project_filter(self):
        rows = parse(
            summary_csv(
                self.entries,
                self.projects,
                ReportVariant.PROJECT_TASK,
                NOW,
                project_id=self.beta.id,
            )
        )
        assert rows == [["project", "task", "seconds", "hours"], ["beta", "code", "3600", "1.000"]]

    def test_one_second_bucket_is_kept(self):
        entries = [closed(self.alpha.id, datetime(2024, 1, 1, 9), datetime(2024, 1, 1, 9, 0, 1), "x")]
        rows = parse(summary_csv(entries, self.projects, ReportVariant.PROJECT_TASK, NOW))
        assert rows[1] == ["Alpha", "x", "1", "0.000"]


def test_orphaned_project_renders_as_unknown():
    entries = [closed("gone", datetime(2024, 1, 1, 9), datetime(2024, 1, 1, 10), "x")]
    rows = parse(summary_csv(entries, [], ReportVariant.PROJECT_TASK, NOW))
    assert rows[1][0] == "Unknown"


def test_fields_are_escaped():
    project = Project(name='Acme, "Big" Co')
    entries = [closed(project.id, datetime(2024, 1, 1, 9), datetime(2024, 1, 1, 10), "line1\nline2")]
    text = summary_csv(entries, [project], ReportVariant.PROJECT_TASK, NOW)

    assert '"Acme, ""Big"" Co"' in text
    assert '"line1\nline2"' in text
    assert text.endswith("\n")
    assert parse(text)[1][:2] == ['Acme, "Big" Co', "line1\nline2"]


def test_carriage_returns_are_quoted():
    assert render_csv(["task"], [["a\rb"]]) == 'task\n"a\rb"\n'
    assert render_csv(["task"], [["a\r\nb"], ["plain"]]) == 'task\n"a\r\nb"\nplain\n'


def test_render_csv_plain_fields_are_unquoted():
    assert render_csv(["a", "b"], [["x", "1.000"]]) == "a,b\nx,1.000\n"


class TestEntriesExport:
    def test_only_completed_entries_oldest_first(self):
        alpha = Project(name="Alpha")
        entries = [
            closed(alpha.id, datetime(2024, 1, 2, 9), datetime(2024, 1, 2, 10, 30), "later"),
            closed(alpha.id, datetime(2024, 1, 1, 9), datetime(2024, 1, 1, 9, 15)),
            TimeEntry(project_id=alpha.id, start_at=datetime(2024, 1, 3, 9), note="running"),
        ]
        rows = parse(entries_csv(entries, [alpha]))
        assert rows == [
            ["project", "task", "start", "end", "hours"],
            ["Alpha", NO_TASK, "2024-01-01 09:00", "2024-01-01 09:15", "0.250"],
            ["Alpha", "later", "2024-01-02 09:00", "2024-01-02 10:30", "1.500"],
        ]

    def test_project_filter(self):
        alpha = Project(name="Alpha")
        beta = Project(name="Beta")
        entries = [
            closed(alpha.id, datetime(2024, 1, 1, 9), datetime(2024, 1, 1, 10), "a"),
            closed(beta.id, datetime(2024, 1, 1, 9), datetime(2024, 1, 1, 10), "b"),
        ]
        rows = parse(entries_csv(entries, [alpha, beta], project_id=beta.id))
        assert [r[0] for r in rows[1:]] == ["Beta"]


def test_export_path_and_write(data_dir):
    path = export_path(data_dir, "time_entries", datetime(2024, 1, 2, 3, 4, 5))
    assert path == data_dir / "time_entries-20240102-030405.csv"

    written = write_csv(path, "a,b\nç,1\n")
    assert isinstance(written, Path)
    assert written.read_bytes() == "a,b\nç,1\n".encode("utf-8")
