"""Session engine: the single owner of projects, entries and the running session.

All mutations go through one re-entrant lock. UI calls, activity-gate
signals, resume-prompt callbacks, retry timers and the display tick all end up
serialized on it, which is what keeps the "at most one running entry" and
"stop once" guarantees intact when events arrive from other threads.
"""

import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, List, Optional

from timetracker.config import TrackerSettings
from timetracker.core import aggregation, reports
from timetracker.core.clock import (
    Clock,
    Scheduler,
    SystemClock,
    ThreadingScheduler,
    TimerHandle,
    cancel_quietly,
)
from timetracker.core.store import ENTRIES, PROJECTS, JsonStore, StoreError
from timetracker.hooks.activity import ActivityGate
from timetracker.hooks.prompt import ResumePrompt
from timetracker.models.entry import EndedReason, TimeEntry
from timetracker.models.project import Project
from timetracker.models.state import EngineState, ResumeContext

logger = logging.getLogger(__name__)

Observer = Callable[[EngineState], None]

NO_TIME_TITLE = "--:--:--"


class SessionEngine:
    """Tracks time against projects and reacts to activity pauses."""

    def __init__(
        self,
        store: JsonStore,
        settings: Optional[TrackerSettings] = None,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
        gate: Optional[ActivityGate] = None,
        prompt: Optional[ResumePrompt] = None,
    ):
        self.store = store
        self.settings = settings or TrackerSettings(data_dir=store.data_dir)
        self.clock = clock or SystemClock()
        self.scheduler = scheduler or ThreadingScheduler()
        self.prompt: Optional[ResumePrompt] = None

        self.projects: List[Project] = []
        self.entries: List[TimeEntry] = []
        self.selected_project_id: Optional[str] = None
        self.current_note: str = ""
        self.running_entry_id: Optional[str] = None
        self.resume_context: Optional[ResumeContext] = None

        self._lock = threading.RLock()
        self._retry_handle: Optional[TimerHandle] = None
        self._pause_latched = False
        self._observers: List[Observer] = []
        self._detachers: List[Callable[[], None]] = []

        self._load()

        if gate is not None:
            self.attach_gate(gate)
        if prompt is not None:
            self.attach_prompt(prompt)

    # ---- Loading ----

    def _load(self) -> None:
        """Read both collections and rebuild the in-memory session state."""
        self.projects = self._load_collection(PROJECTS, Project)
        self.entries = self._load_collection(ENTRIES, TimeEntry)

        open_entries = [e for e in self.entries if e.end_at is None]
        if open_entries:
            running = max(open_entries, key=lambda e: e.start_at)
            self._close_stray_entries(running, open_entries)
            self.running_entry_id = running.id
            self._select_from_entry(running)
            logger.info("Resumed running entry %s", running.id)
            return

        if self.entries:
            latest = max(self.entries, key=lambda e: e.end_at or e.start_at)
            self._select_from_entry(latest)
        elif self.projects:
            self.selected_project_id = self.projects[0].id

    def _load_collection(self, name: str, model) -> list:
        try:
            return self.store.load_or_default(name, model, [])
        except StoreError as e:
            logger.error("Loading %s failed, starting empty: %s", name, e)
            return []

    def _close_stray_entries(
        self, running: TimeEntry, open_entries: List[TimeEntry]
    ) -> None:
        # Older open entries are closed at the moment the newest one started.
        strays = [e for e in open_entries if e is not running]
        if not strays:
            return
        for entry in strays:
            entry.close(max(entry.start_at, running.start_at), EndedReason.SYSTEM)
        logger.warning("Closed %d stray open entries found on load", len(strays))
        self._persist_entries()

    def _select_from_entry(self, entry: TimeEntry) -> None:
        if self._find_project(entry.project_id) is not None:
            self.selected_project_id = entry.project_id
        elif self.projects:
            self.selected_project_id = self.projects[0].id
        self.current_note = entry.note or ""

    # ---- Lookups ----

    def _find_project(self, project_id: Optional[str]) -> Optional[Project]:
        if project_id is None:
            return None
        return next((p for p in self.projects if p.id == project_id), None)

    def _find_entry(self, entry_id: Optional[str]) -> Optional[TimeEntry]:
        if entry_id is None:
            return None
        return next((e for e in self.entries if e.id == entry_id), None)

    def project_name(self, project_id: Optional[str]) -> str:
        """Display name of a project, or "Unknown" for a dangling reference."""
        project = self._find_project(project_id)
        return project.name if project else reports.UNKNOWN_PROJECT

    @property
    def running_entry(self) -> Optional[TimeEntry]:
        """The open entry the cached running id points at, if it is still open."""
        with self._lock:
            entry = self._find_entry(self.running_entry_id)
            if entry is None or entry.end_at is not None:
                return None
            return entry

    @property
    def is_running(self) -> bool:
        return self.running_entry is not None

    @property
    def selected_project(self) -> Optional[Project]:
        return self._find_project(self.selected_project_id)

    # ---- Observers ----

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer; returns a function that unsubscribes it."""
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def snapshot(self) -> EngineState:
        """Copy of the current state, safe to read from any thread."""
        with self._lock:
            return EngineState(
                projects=[p.model_copy() for p in self.projects],
                entries=[e.model_copy() for e in self.entries],
                selected_project_id=self.selected_project_id,
                current_note=self.current_note,
                running_entry_id=self.running_entry_id,
                resume_context=(
                    self.resume_context.model_copy() if self.resume_context else None
                ),
            )

    def _notify(self) -> None:
        if not self._observers:
            return
        state = self.snapshot()
        for observer in list(self._observers):
            try:
                observer(state)
            except Exception:
                logger.exception("Engine observer failed")

    # ---- Persistence ----

    def _persist_projects(self) -> None:
        try:
            self.store.save(PROJECTS, self.projects)
        except StoreError as e:
            logger.error("Saving projects failed: %s", e)

    def _persist_entries(self) -> None:
        try:
            self.store.save(ENTRIES, self.entries)
        except StoreError as e:
            logger.error("Saving entries failed: %s", e)

    # ---- Projects and draft ----

    def add_project(self, name: str) -> Optional[Project]:
        """Create and select a project. Blank names are ignored."""
        trimmed = (name or "").strip()
        if not trimmed:
            return None

        with self._lock:
            project = Project(name=trimmed)
            self.projects.append(project)
            self.selected_project_id = project.id
            self._persist_projects()
            self._notify()
            return project

    def select_project(self, project_id: str) -> bool:
        """Select an existing project. Does not touch the running entry."""
        with self._lock:
            if self._find_project(project_id) is None:
                return False
            self.selected_project_id = project_id
            self._notify()
            return True

    def set_note(self, note: str) -> None:
        """Update the draft note used by the next start or switch."""
        with self._lock:
            self.current_note = note or ""
            self._notify()

    def restore_running_note(self) -> bool:
        """Put the running entry's note back into the draft."""
        with self._lock:
            running = self.running_entry
            if running is None:
                return False
            self.current_note = running.note or ""
            self._notify()
            return True

    # ---- Session lifecycle ----

    def _note_allowed(self, note: str) -> bool:
        return bool(note) or not self.settings.require_note

    @property
    def can_start(self) -> bool:
        with self._lock:
            return (
                self.running_entry is None
                and self.selected_project is not None
                and self._note_allowed(self.current_note.strip())
            )

    def can_switch_task(self, new_note: Optional[str] = None) -> bool:
        """True when a session runs and the (draft) note is a different, non-empty one."""
        with self._lock:
            text = (self.current_note if new_note is None else new_note).strip()
            running = self.running_entry
            return running is not None and bool(text) and text != running.trimmed_note

    @property
    def primary_action_label(self) -> str:
        with self._lock:
            if self.running_entry is None:
                return "Start"
            if self.can_switch_task():
                return "Switch"
            return "Stop"

    def start_session(
        self, project_id: Optional[str] = None, note: Optional[str] = None
    ) -> Optional[TimeEntry]:
        """Start tracking on a project (default: the selected one).

        Returns the new entry, or None if no known project is given or the
        note is required and blank.
        """
        with self._lock:
            pid = project_id or self.selected_project_id
            if self._find_project(pid) is None:
                logger.debug("Not starting: no known project selected")
                return None

            text = (self.current_note if note is None else note).strip()
            if not self._note_allowed(text):
                logger.debug("Not starting: a note is required")
                return None

            return self._start(pid, text)

    def _start(self, project_id: str, note: str) -> TimeEntry:
        if self.running_entry_id is not None:
            logger.warning("Starting while an entry is still running; closing it first")
            self._close_running(EndedReason.SYSTEM)
        if aggregation.find_running(self.entries) is not None:
            self._close_unreferenced_open_entries()

        entry = TimeEntry(project_id=project_id, start_at=self.clock.now(), note=note or None)
        self.entries.append(entry)
        self.running_entry_id = entry.id
        self.selected_project_id = project_id
        self.current_note = note
        self._clear_resume_context()
        # A new session is a new pause episode.
        self._pause_latched = False
        self._persist_entries()

        logger.info("Started entry %s on %s", entry.id, self.project_name(project_id))
        self._notify()
        return entry

    def _close_unreferenced_open_entries(self) -> None:
        now = self.clock.now()
        strays = [e for e in self.entries if e.end_at is None]
        for entry in strays:
            entry.close(max(now, entry.start_at), EndedReason.SYSTEM)
        if strays:
            logger.warning("Closed %d open entries not marked as running", len(strays))
            self._persist_entries()

    def _close_running(self, reason: EndedReason) -> Optional[TimeEntry]:
        """Close the running entry and drop the running reference whatever happens."""
        running_id = self.running_entry_id
        self.running_entry_id = None

        entry = self._find_entry(running_id)
        if entry is None or entry.end_at is not None:
            logger.warning("Running entry %s is missing or closed; cleared reference", running_id)
            return None

        entry.close(max(self.clock.now(), entry.start_at), reason)
        self._persist_entries()
        logger.info("Stopped entry %s (%s)", entry.id, reason.value)
        return entry

    def stop_session(self, reason: EndedReason = EndedReason.USER) -> Optional[TimeEntry]:
        """Stop the running entry. Stopping when idle does nothing.

        A user stop discards any pending resume offer. A system stop records
        what was stopped so the user can be offered to resume it.
        """
        with self._lock:
            if self.running_entry_id is None:
                return None

            stopped = self._close_running(reason)
            if reason == EndedReason.USER:
                self._clear_resume_context()
            elif stopped is not None:
                self._begin_resume_context(stopped)

            self._notify()
            return stopped

    def switch_task(self, new_note: Optional[str] = None) -> Optional[TimeEntry]:
        """Stop the running entry and start a new one with a different note."""
        with self._lock:
            text = (self.current_note if new_note is None else new_note).strip()
            if not self.can_switch_task(text):
                return None

            project_id = self.running_entry.project_id
            self._close_running(EndedReason.USER)
            self._clear_resume_context()
            return self._start(project_id, text)

    def primary_action(self) -> Optional[TimeEntry]:
        """Start, switch or stop, whichever the current state calls for."""
        with self._lock:
            if self.running_entry is None:
                return self.start_session()
            if self.can_switch_task():
                return self.switch_task()
            return self.stop_session(EndedReason.USER)

    def shutdown(self) -> None:
        """Stop tracking and detach from all external collaborators."""
        with self._lock:
            if self.running_entry_id is not None:
                self.stop_session(EndedReason.USER)
            self._cancel_retry()
            for detach in self._detachers:
                detach()
            self._detachers.clear()
            self.prompt = None

    # ---- Activity gate ----

    def attach_gate(self, gate: ActivityGate) -> None:
        self._detachers.append(gate.on_pause(self.handle_paused))
        self._detachers.append(gate.on_resume(self.handle_resumed))

    def handle_paused(self) -> None:
        """Auto-stop once per pause, however many pause signals arrive."""
        with self._lock:
            if self._pause_latched:
                logger.debug("Ignoring repeated pause signal")
                return
            self._pause_latched = True

            if self.running_entry_id is None:
                return
            logger.info("Activity paused; auto-stopping")
            self.stop_session(EndedReason.SYSTEM)

    def handle_resumed(self) -> None:
        """Re-arm the pause latch and offer to resume. Never restarts by itself."""
        with self._lock:
            self._pause_latched = False
            self._request_prompt(self.clock.now())
            self._notify()

    # ---- Resume prompt ----

    def attach_prompt(self, prompt: ResumePrompt) -> None:
        self.prompt = prompt
        prompt.on_user_accepted(self.resume_from_prompt)
        self._detachers.append(lambda: prompt.on_user_accepted(None))

    def _begin_resume_context(self, stopped: TimeEntry) -> None:
        self._cancel_retry()
        self.resume_context = ResumeContext(
            project_id=stopped.project_id,
            note=stopped.note,
            stopped_at=stopped.end_at,
        )
        self._request_prompt(self.clock.now())

    def _clear_resume_context(self) -> None:
        self._cancel_retry()
        self.resume_context = None

    def _cancel_retry(self) -> None:
        handle, self._retry_handle = self._retry_handle, None
        cancel_quietly(handle)

    def _context_expired(self, context: ResumeContext, now: datetime) -> bool:
        return now - context.stopped_at > timedelta(seconds=self.settings.resume_max_age)

    def _request_prompt(self, now: datetime) -> bool:
        """Show the resume prompt if the current context still warrants one."""
        context = self.resume_context
        if context is None or self.running_entry is not None:
            return False

        settings = self.settings
        if now - context.stopped_at < timedelta(seconds=settings.resume_min_delay):
            logger.debug("Resume prompt suppressed: too soon after the stop")
            return False
        if self._context_expired(context, now):
            logger.info("Resume offer for %s expired", context.project_id)
            self._clear_resume_context()
            return False

        is_retry = context.last_prompt_at is not None
        if is_retry:
            if now - context.last_prompt_at < timedelta(seconds=settings.resume_debounce):
                logger.debug("Resume prompt suppressed: shown moments ago")
                return False
            if context.has_retried:
                logger.debug("Resume prompt suppressed: retry already used")
                return False

        if self.prompt is None:
            logger.info("No resume prompt attached; resume manually")
            return False

        try:
            self.prompt.show(context.project_id, self.project_name(context.project_id))
        except Exception:
            logger.warning("Resume prompt could not be shown", exc_info=True)
            return False

        context.last_prompt_at = now
        if is_retry:
            context.has_retried = True
            self._cancel_retry()
        else:
            self._schedule_retry(context)
        return True

    def _schedule_retry(self, context: ResumeContext) -> None:
        self._cancel_retry()
        try:
            self._retry_handle = self.scheduler.call_later(
                self.settings.resume_retry_delay, lambda: self._retry_due(context)
            )
        except Exception:
            logger.warning("Could not schedule resume prompt retry", exc_info=True)
            self._retry_handle = None

    def _retry_due(self, context: ResumeContext) -> None:
        with self._lock:
            if self.resume_context is not context:
                return
            self._retry_handle = None
            if self.running_entry is not None:
                return
            self._request_prompt(self.clock.now())
            self._notify()

    def resume_from_prompt(self, project_id: Optional[str] = None) -> Optional[TimeEntry]:
        """Restart tracking after the user accepted a resume prompt.

        Only honoured while a fresh resume context exists and nothing runs.
        The target is the prompt's project, else the selected one, else the
        auto-stopped one. The auto-stopped entry's note is reused.
        """
        with self._lock:
            if self.running_entry is not None:
                return None

            context = self.resume_context
            if context is None:
                logger.debug("Resume ignored: nothing was auto-stopped")
                return None
            if self._context_expired(context, self.clock.now()):
                logger.info("Resume ignored: offer for %s expired", context.project_id)
                self._clear_resume_context()
                self._notify()
                return None

            candidates = (project_id, self.selected_project_id, context.project_id)
            target = next((c for c in candidates if self._find_project(c)), None)
            if target is None:
                return None

            return self.start_session(target, context.note or "")

    # ---- Display tick and live totals ----

    def tick(self) -> None:
        """Periodic refresh: expire stale resume offers and notify observers."""
        with self._lock:
            context = self.resume_context
            if context is not None and self._context_expired(context, self.clock.now()):
                logger.info("Resume offer for %s expired", context.project_id)
                self._clear_resume_context()
            self._notify()

    def running_seconds(self, now: Optional[datetime] = None) -> int:
        with self._lock:
            running = self.running_entry
            entries = [running] if running else []
        return aggregation.running_seconds(entries, now or self.clock.now())

    def today_seconds(
        self, project_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> int:
        with self._lock:
            pid = project_id or self.selected_project_id
            entries = list(self.entries)
        if pid is None:
            return 0
        return aggregation.total_seconds_today(entries, pid, now or self.clock.now())

    def all_time_seconds(
        self, project_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> int:
        with self._lock:
            pid = project_id or self.selected_project_id
            entries = list(self.entries)
        if pid is None:
            return 0
        return aggregation.total_seconds_all_time(entries, pid, now or self.clock.now())

    def title(self, now: Optional[datetime] = None) -> str:
        """Compact label: running time, else today's total, else placeholder."""
        now = now or self.clock.now()
        with self._lock:
            if self.running_entry is not None:
                return aggregation.format_hms(self.running_seconds(now))
            if self.selected_project_id is not None:
                return aggregation.format_hms(self.today_seconds(now=now))
            return NO_TIME_TITLE

    # ---- Exports ----

    def summary_csv(
        self,
        variant: reports.ReportVariant,
        project_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> str:
        state = self.snapshot()
        return reports.summary_csv(
            state.entries,
            state.projects,
            variant,
            now or self.clock.now(),
            project_id=project_id,
        )

    def entries_csv(self, project_id: Optional[str] = None) -> str:
        state = self.snapshot()
        return reports.entries_csv(state.entries, state.projects, project_id=project_id)

    def export_entries(
        self, project_id: Optional[str] = None, path: Optional[Path] = None
    ) -> Optional[Path]:
        """Write the completed-entries CSV; returns the file or None on failure."""
        text = self.entries_csv(project_id)
        target = path or reports.export_path(
            self.store.data_dir, "time_entries", self.clock.now()
        )
        try:
            return reports.write_csv(target, text)
        except OSError as e:
            logger.error("Export to %s failed: %s", target, e)
            return None
