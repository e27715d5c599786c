from datetime import timedelta
from enum import Enum
from tt.common.logger import log
from tt.core.errors import AlreadyRunning, NotRunning
from tt.core.models import TimeEntry


class TimerState(Enum):
    IDLE = "idle"
    RUNNING = "running"


# This object owns the one-timer-at-a-time rule. It writes entries into the shared EntryStore and remembers which
# one is open, so nothing ever has to scan the store to answer "is something running?".
class Timer:

    def __init__(self, store, clock, catalog=None):
        self.store = store
        self.clock = clock
        self.catalog = catalog
        self._active_id = None
        store.add_remove_listener(self._on_entry_removed)

    @property
    def state(self):
        return TimerState.RUNNING if self._active_id is not None else TimerState.IDLE

    @property
    def active_id(self):
        return self._active_id

    def is_running(self):
        return self._active_id is not None

    # The open entry itself (a copy), or None while idle.
    def active_entry(self):
        if self._active_id is None:
            return None
        return self.store.get(self._active_id)

    # Idle -> Running. Fails without touching the store if something is already running or the references are bad.
    def start(self, description, project_id=None, task_id=None):
        if self._active_id is not None:
            raise AlreadyRunning(self._active_id)
        if self.catalog is not None:
            project_id = self.catalog.check_reference(project_id, task_id)

        entry = TimeEntry(
            description=(description or "").strip(),
            start=self.clock.now(),
            project_id=project_id,
            task_id=task_id,
        )
        self._active_id = self.store.append(entry)
        log.debug(f"Started timer for entry {self._active_id} '{entry.description}' at {entry.start.isoformat()}")
        return self._active_id

    # Running -> Idle.
    def stop(self):
        if self._active_id is None:
            raise NotRunning()
        now = self.clock.now()
        entry_id = self._active_id

        def _close(entry):
            # Clock went backwards (DST, manual change): record a zero-length entry rather than a negative one
            entry.end = max(now, entry.start)

        stopped = self.store.update(entry_id, _close)
        self._active_id = None
        log.debug(f"Stopped timer for entry {entry_id} after {stopped.duration()}")
        return entry_id

    # How long the open entry has been running.
    def elapsed(self):
        entry = self.active_entry()
        if entry is None:
            raise NotRunning()
        return max(self.clock.now() - entry.start, timedelta(0))

    # Picks up a timer that was still running when the session was last saved. If the loaded data has several open
    # entries, only the latest keeps running and the others are closed at their own start.
    def restore(self):
        self._active_id = None
        open_entries = self.store.open_entries()
        if not open_entries:
            return None

        open_entries.sort(key=lambda e: e.start)
        keep = open_entries[-1]
        for extra in open_entries[:-1]:
            self.store.update(extra.id, lambda e: setattr(e, "end", e.start))
        if len(open_entries) > 1:
            log.warning(f"Found {len(open_entries)} running entries in saved data, closed all but entry {keep.id}")

        self._active_id = keep.id
        log.info(f"Restored running timer for entry {keep.id}, running since {keep.start.isoformat()}")
        return keep.id

    def _on_entry_removed(self, entry):
        if entry.id == self._active_id:
            self._active_id = None
            log.debug(f"Active entry {entry.id} was removed, timer is idle again")
