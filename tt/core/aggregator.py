from datetime import date, datetime, time, timedelta

from tt.core.models import UNKNOWN

_ZERO = timedelta(0)


# First day of the week containing `day`. first_weekday follows date.weekday(): 0 is Monday, 6 is Sunday.
def week_start_for(day: date, first_weekday: int = 0) -> date:
    return day - timedelta(days=(day.weekday() - first_weekday) % 7)


# Read-only rollups over the store. Entries crossing midnight are clamped to each day's window and a running entry
# counts up to clock.now() at query time.
class Aggregator:

    def __init__(self, store, catalog, clock, tz=None):
        self.store = store
        self.catalog = catalog
        self.clock = clock
        self.tz = tz

    #region === Time windows ===

    def _midnight(self, day: date) -> datetime:
        if self.tz is not None:
            return datetime.combine(day, time.min, tzinfo=self.tz)
        # Naive local midnight, then let the OS attach the right offset for that date
        return datetime.combine(day, time.min).astimezone()

    def _window(self, first_day: date, last_day: date):
        return self._midnight(first_day), self._midnight(last_day + timedelta(days=1))

    def _end_of(self, entry, now):
        return entry.end if entry.end is not None else max(now, entry.start)

    def _overlap(self, entry, window_start, window_end, now):
        start = max(entry.start, window_start)
        end = min(self._end_of(entry, now), window_end)
        return max(end - start, _ZERO)

    def _touches(self, entry, window_start, window_end, now):
        end = self._end_of(entry, now)
        if entry.start == end:
            return window_start <= entry.start < window_end
        return entry.start < window_end and end > window_start

    def _local_date(self, moment):
        return moment.astimezone(self.tz).date() if self.tz is not None else moment.astimezone().date()

    #endregion === Time windows ===

    #region === Totals ===

    def duration_on_day(self, entry, day: date) -> timedelta:
        window_start, window_end = self._window(day, day)
        return self._overlap(entry, window_start, window_end, self.clock.now())

    def total_for_day(self, day: date) -> timedelta:
        return self.total_for_range(day, day)

    def total_for_range(self, first_day: date, last_day: date) -> timedelta:
        if last_day < first_day:
            raise ValueError(f"Range ends ({last_day}) before it starts ({first_day})")
        window_start, window_end = self._window(first_day, last_day)
        now = self.clock.now()
        return sum((self._overlap(e, window_start, window_end, now) for e in self.store.list()), _ZERO)

    def totals_for_week(self, week_start: date) -> dict:
        now = self.clock.now()
        entries = self.store.list()
        totals = {}
        for offset in range(7):
            day = week_start + timedelta(days=offset)
            window_start, window_end = self._window(day, day)
            totals[day] = sum((self._overlap(e, window_start, window_end, now) for e in entries), _ZERO)
        return totals

    def total(self, entries=None) -> timedelta:
        now = self.clock.now()
        entries = self.store.list() if entries is None else entries
        return sum((e.duration(now) for e in entries), _ZERO)

    def today(self) -> date:
        return self._local_date(self.clock.now())

    #endregion === Totals ===

    #region === Views and groupings ===

    def entries_for_day(self, day: date):
        window_start, window_end = self._window(day, day)
        now = self.clock.now()
        return tuple(e for e in self.store.list() if self._touches(e, window_start, window_end, now))

    # Groups by (project, task). Keys are the ids for live references, None where the entry has no reference and
    # UNKNOWN where the reference points at something that was deleted.
    def by_project_and_task(self, entries) -> dict:
        now = self.clock.now()
        totals = {}
        for entry in entries:
            key = self.key_for(entry)
            totals[key] = totals.get(key, _ZERO) + entry.duration(now)
        return totals

    # Totals per entry description, in order of first appearance. Blank descriptions share one group.
    def by_description(self, entries) -> dict:
        now = self.clock.now()
        totals = {}
        for entry in entries:
            key = entry.description or "(no description)"
            totals[key] = totals.get(key, _ZERO) + entry.duration(now)
        return totals

    def key_for(self, entry):
        return self._project_key(entry.project_id), self._task_key(entry.task_id)

    def _project_key(self, project_id):
        resolved = self.catalog.resolve_project(project_id)
        if resolved is None or resolved is UNKNOWN:
            return resolved
        return resolved.id

    def _task_key(self, task_id):
        resolved = self.catalog.resolve_task(task_id)
        if resolved is None or resolved is UNKNOWN:
            return resolved
        return resolved.id

    # Display label for a by_project_and_task key.
    def label_for(self, key) -> str:
        project_id, task_id = key
        parts = []
        for ref, resolve, kind in ((project_id, self.catalog.resolve_project, "project"),
                                   (task_id, self.catalog.resolve_task, "task")):
            if ref is None:
                parts.append(f"(no {kind})")
            elif ref is UNKNOWN:
                parts.append(f"(unknown {kind})")
            else:
                parts.append(resolve(ref).name)
        return " / ".join(parts)

    #endregion === Views and groupings ===
