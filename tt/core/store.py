import copy

from tt.common.logger import log
from tt.core.errors import NotFound


class EntryStore:
    """Single source of truth for the session's entries.

    ``get`` and ``list`` hand out copies, so nothing outside the store can
    change an entry except through ``update``. No I/O happens here.
    """

    def __init__(self):
        self._entries = {}  # id -> TimeEntry, dicts keep insertion order
        self._next_id = 1
        self._remove_listeners = []

    def __len__(self):
        return len(self._entries)

    def add_remove_listener(self, callback):
        self._remove_listeners.append(callback)

    def append(self, entry):
        entry = copy.copy(entry)
        entry.id = self._next_id
        self._next_id += 1
        self._entries[entry.id] = entry
        log.debug(f"Appended entry {entry.id} '{entry.description}'")
        return entry.id

    # Bulk load of previously saved entries. Ids and order are kept as given.
    def restore(self, entries):
        self._entries = {}
        for entry in entries:
            if entry.id is None or entry.id in self._entries:
                raise ValueError(f"Cannot restore entry with missing or duplicate id {entry.id}")
            self._entries[entry.id] = copy.copy(entry)
        self._next_id = max(self._entries, default=0) + 1

    def get(self, entry_id):
        entry = self._entries.get(entry_id)
        return copy.copy(entry) if entry is not None else None

    def update(self, entry_id, mutator):
        try:
            entry = self._entries[entry_id]
        except KeyError:
            raise NotFound("entry", entry_id) from None
        mutator(entry)
        entry.id = entry_id
        return copy.copy(entry)

    def remove(self, entry_id):
        try:
            entry = self._entries.pop(entry_id)
        except KeyError:
            raise NotFound("entry", entry_id) from None
        log.debug(f"Removed entry {entry_id} '{entry.description}'")
        for callback in self._remove_listeners:
            callback(entry)
        return entry

    def list(self):
        return tuple(copy.copy(e) for e in self._entries.values())

    # Entries with no end time. Used when restoring a saved session, never on the hot path.
    def open_entries(self):
        return [copy.copy(e) for e in self._entries.values() if e.end is None]
