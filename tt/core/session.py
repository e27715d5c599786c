from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from tt.common.logger import log
from tt.core import config
from tt.core.aggregator import Aggregator, week_start_for
from tt.core.catalog import Catalog
from tt.core.clock import SystemClock
from tt.core.errors import AlreadyRunning, InvalidEntry, NotFound, PersistenceFailure
from tt.core.models import TimeEntry
from tt.core.snapshot import SnapshotThrottle, create_snapshot, prune_snapshots
from tt.core.store import EntryStore
from tt.core.timer import Timer

# Marks "leave this field alone" in EditEntry, since None is a meaningful value for references.
KEEP = object()


#region === Commands ===

@dataclass
class StartTask:
    name: str
    project_id: int | None = None
    task_id: int | None = None


@dataclass
class Stop:
    pass


@dataclass
class ListEntries:
    day: date | None = None


@dataclass
class Exit:
    pass


@dataclass
class ShowDay:
    day: date | None = None


@dataclass
class ShowWeek:
    week_start: date | None = None


@dataclass
class DeleteEntry:
    entry_id: int


@dataclass
class EditEntry:
    entry_id: int
    description: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    project_id: object = KEEP
    task_id: object = KEEP


@dataclass
class AddEntry:
    description: str
    duration: timedelta
    start: datetime | None = None
    project_id: int | None = None
    task_id: int | None = None

#endregion === Commands ===


@dataclass
class DayView:
    day: date
    entries: tuple
    total: timedelta


@dataclass
class SessionSummary:
    entries: tuple
    session_entries: tuple
    by_description: dict
    by_project_and_task: dict
    today_total: timedelta
    total: timedelta
    saved: bool
    auto_stopped_id: int | None = None
    warnings: list = field(default_factory=list)


# The one object the CLI and the window talk to. Owns the store and catalog, and is the only caller of persistence.
class SessionController:

    def __init__(self, persistence, clock=None, settings=None, tz=None):
        self.persistence = persistence
        self.clock = clock or SystemClock()
        self.store = EntryStore()
        self.catalog = Catalog()
        self.timer = Timer(self.store, self.clock, self.catalog)
        self.aggregator = Aggregator(self.store, self.catalog, self.clock, tz=tz)
        self.settings = config.default_settings()
        self._explicit_settings = settings
        self.load_warning = None
        self.unsaved = False
        self.closed = False
        self._first_session_id = 1
        self._snapshots = SnapshotThrottle()
        self._handlers = {
            StartTask: lambda c: self.start(c.name, c.project_id, c.task_id),
            Stop: lambda c: self.stop(),
            ListEntries: lambda c: self.list_entries(c.day),
            Exit: lambda c: self.exit(),
            ShowDay: lambda c: self.show_day(c.day),
            ShowWeek: lambda c: self.show_week(c.week_start),
            DeleteEntry: lambda c: self.delete_entry(c.entry_id),
            EditEntry: lambda c: self.edit_entry(
                c.entry_id, description=c.description, start=c.start, end=c.end,
                project_id=c.project_id, task_id=c.task_id),
            AddEntry: lambda c: self.add_entry(c.description, c.duration, c.start, c.project_id, c.task_id),
        }

    #region === Lifecycle ===

    # Loads whatever the persistence collaborator has. A load failure leaves us with an empty session and a warning
    # rather than no session at all.
    def open(self):
        try:
            projects, tasks, entries = self.persistence.load_all()
        except PersistenceFailure as e:
            log.warning(f"Could not load saved data, starting an empty session: {e}", exc_info=True)
            self.load_warning = str(e)
            if hasattr(self.persistence, "quarantine"):
                self.persistence.quarantine()
            projects, tasks, entries = [], [], []

        self.catalog.restore(projects, tasks)
        self.store.restore(entries)
        self.timer.restore()
        self._first_session_id = max((e.id for e in entries), default=0) + 1

        loaded_settings = getattr(self.persistence, "settings", None)
        if self._explicit_settings is not None:
            self.settings.update(self._explicit_settings)
        elif isinstance(loaded_settings, dict):
            self.settings.update(loaded_settings)
        self._snapshots = SnapshotThrottle(self.settings.get("snapshot_min_minutes", 5))

        log.info(f"Opened session with {len(self.store)} entries, timer {self.timer.state.value}")
        return self

    # Saves everything. A failed save is logged and reported through the return value and `unsaved`, the in-memory
    # session carries on untouched.
    def flush(self, reason="action", priority="low"):
        if hasattr(self.persistence, "settings"):
            self.persistence.settings = dict(self.settings)
        try:
            state = self.persistence.save_all(self.catalog.projects(), self.catalog.tasks(), self.store.list())
        except PersistenceFailure:
            log.error(f"Saving failed ({reason}), changes are only held in memory", exc_info=True)
            self.unsaved = True
            return False
        self.unsaved = False

        snapshot_dir = getattr(self.persistence, "snapshot_dir", None)
        if isinstance(state, dict) and snapshot_dir is not None and self._snapshots.should_snapshot(priority):
            try:
                create_snapshot(state, snapshot_dir, reason, priority)
                prune_snapshots(snapshot_dir)
                self._snapshots.mark_done()
            except OSError:
                log.warning(f"Could not write snapshot for '{reason}'", exc_info=True)
        return True

    def dispatch(self, command):
        handler = self._handlers.get(type(command))
        if handler is None:
            raise TypeError(f"Unknown command {command!r}")
        log.debug(f"Dispatching {command!r}")
        return handler(command)

    #endregion === Lifecycle ===

    #region === Timer commands ===

    def start(self, name, project_id=None, task_id=None):
        entry_id = self.timer.start(name, project_id=project_id, task_id=task_id)
        self.flush("start")
        return entry_id

    def stop(self):
        entry_id = self.timer.stop()
        self.flush("stop")
        return self.store.get(entry_id)

    def is_running(self):
        return self.timer.is_running()

    def elapsed(self):
        return self.timer.elapsed()

    def active_entry(self):
        return self.timer.active_entry()

    # Exit policy "auto_stop" stops a running timer first. "require_stop" refuses with AlreadyRunning and leaves the
    # session open.
    def exit(self):
        auto_stopped = None
        if self.timer.is_running():
            if self.settings.get("exit_policy") == "require_stop":
                raise AlreadyRunning(self.timer.active_id, "Stop the running timer before exiting")
            auto_stopped = self.timer.stop()
            log.info(f"Stopped running entry {auto_stopped} on exit")

        saved = self.flush("app_exit", priority="high")
        entries = self.store.list()
        warnings = []
        if self.load_warning:
            warnings.append(f"Saved data could not be loaded: {self.load_warning}")
        if not saved:
            warnings.append("Saving failed, this session's changes were not written to disk")

        summary = SessionSummary(
            entries=entries,
            session_entries=tuple(e for e in entries if e.id >= self._first_session_id),
            by_description=self.aggregator.by_description(entries),
            by_project_and_task=self.aggregator.by_project_and_task(entries),
            today_total=self.aggregator.total_for_day(self.aggregator.today()),
            total=self.aggregator.total(entries),
            saved=saved,
            auto_stopped_id=auto_stopped,
            warnings=warnings,
        )
        self.closed = True
        log.info(f"Closed session, {len(entries)} entries, saved={saved}")
        return summary

    #endregion === Timer commands ===

    #region === Entries ===

    def list_entries(self, day=None):
        if day is None:
            return self.store.list()
        return self.aggregator.entries_for_day(day)

    def show_day(self, day=None):
        day = day or self.aggregator.today()
        return DayView(day=day, entries=self.aggregator.entries_for_day(day),
                       total=self.aggregator.total_for_day(day))

    def show_week(self, week_start=None):
        if week_start is None:
            week_start = week_start_for(self.aggregator.today(), self.settings.get("week_start", 0))
        return self.aggregator.totals_for_week(week_start)

    # Manual entry with a known duration. Without a start it ends now.
    def add_entry(self, description, duration, start=None, project_id=None, task_id=None):
        if duration < timedelta(0):
            raise InvalidEntry("Duration must not be negative")
        project_id = self.catalog.check_reference(project_id, task_id)
        if start is None:
            end = self.clock.now()
            start = end - duration
        else:
            if start.tzinfo is None:
                start = start.astimezone()
            end = start + duration
        entry_id = self.store.append(TimeEntry(
            description=(description or "").strip(), start=start, end=end,
            project_id=project_id, task_id=task_id, manual=True))
        log.info(f"Added manual entry {entry_id} of {duration}")
        self.flush("add_entry")
        return entry_id

    def edit_entry(self, entry_id, description=None, start=None, end=None, project_id=KEEP, task_id=KEEP):
        current = self.store.get(entry_id)
        if current is None:
            raise NotFound("entry", entry_id)

        if start is not None and start.tzinfo is None:
            start = start.astimezone()
        if end is not None and end.tzinfo is None:
            end = end.astimezone()
        new_start = current.start if start is None else start
        new_end = current.end if end is None else end
        if current.is_running and end is not None:
            raise InvalidEntry(f"Entry {entry_id} is running, stop the timer instead of setting an end")
        if new_end is not None and new_end < new_start:
            raise InvalidEntry(f"Entry {entry_id} would end before it starts")

        refs_changed = project_id is not KEEP or task_id is not KEEP
        new_project = current.project_id if project_id is KEEP else project_id
        new_task = current.task_id if task_id is KEEP else task_id
        if refs_changed:
            new_project = self.catalog.check_reference(new_project, new_task)

        def _apply(entry):
            if description is not None:
                entry.description = description.strip()
            entry.start = new_start
            entry.end = new_end
            entry.project_id = new_project
            entry.task_id = new_task

        edited = self.store.update(entry_id, _apply)
        log.info(f"Edited entry {entry_id}")
        self.flush("edit_entry")
        return edited

    def delete_entry(self, entry_id):
        removed = self.store.remove(entry_id)
        log.info(f"Deleted entry {entry_id}")
        self.flush("delete_entry", priority="high")
        return removed

    #endregion === Entries ===

    #region === Projects and tasks ===

    def projects(self):
        return self.catalog.projects()

    def tasks_for_project(self, project_id):
        self.catalog.get_project(project_id)
        return self.catalog.tasks_for_project(project_id)

    def create_project(self, name, description=""):
        project = self.catalog.create_project(name, description)
        self.flush("create_project")
        return project

    def edit_project(self, project_id, name=None, description=None):
        project = self.catalog.edit_project(project_id, name, description)
        self.flush("edit_project")
        return project

    def delete_project(self, project_id):
        removed_tasks = self.catalog.delete_project(project_id)
        self.flush("delete_project", priority="high")
        return removed_tasks

    def create_task(self, project_id, name, description=""):
        task = self.catalog.create_task(project_id, name, description)
        self.flush("create_task")
        return task

    def edit_task(self, task_id, name=None, description=None):
        task = self.catalog.edit_task(task_id, name, description)
        self.flush("edit_task")
        return task

    def delete_task(self, task_id):
        self.catalog.delete_task(task_id)
        self.flush("delete_task", priority="high")

    #endregion === Projects and tasks ===

    # Changes one setting (see config.apply_setting) and saves it.
    def set_setting(self, key, value):
        value = config.apply_setting(self.settings, key, value)
        if key == "snapshot_min_minutes":
            self._snapshots = SnapshotThrottle(value)
        self.flush("settings")
        return value
