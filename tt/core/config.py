import json
import os
from datetime import datetime
from pathlib import Path
from tt.common.logger import log
from tt.common.setup import PATHS
from tt.core.errors import PersistenceFailure
from tt.core.models import Project, Task, TimeEntry
from tt.util.misc import now_iso


_SCHEMA_VERSION = 1

#region === Helpers and Paths ===

STATE_PATH = PATHS.state_file
SNAPSHOT_DIR = PATHS.snapshots

EXIT_POLICIES = ("auto_stop", "require_stop")

# Default values just for the settings section of the state dict.
_SETTINGS_DEFAULTS = {
    "user_name": "",
    "user_email": "",
    "week_start": 0,               # date.weekday() numbering, 0 = Monday
    "exit_policy": "auto_stop",
    "snapshot_min_minutes": 5,
}
# Helper to return a truly fresh, default state.
def build_default_state():
    return {
        "meta": {
            "schema_version": _SCHEMA_VERSION,
            "saved_at": now_iso(),
        },
        "settings": dict(_SETTINGS_DEFAULTS),
        "projects": [],
        "tasks": [],
        "entries": [],
    }

def default_settings():
    return dict(_SETTINGS_DEFAULTS)

# Fills in any settings that are missing or unusable. Returns the names of everything that had to be defaulted.
def _validate_settings(settings):
    defaulted = set()
    for key, default in _SETTINGS_DEFAULTS.items():
        if key not in settings:
            defaulted.add(f"settings.{key}")
            settings[key] = default
    if not isinstance(settings["week_start"], int) or not 0 <= settings["week_start"] <= 6:
        defaulted.add("settings.week_start")
        settings["week_start"] = _SETTINGS_DEFAULTS["week_start"]
    if settings["exit_policy"] not in EXIT_POLICIES:
        defaulted.add("settings.exit_policy")
        settings["exit_policy"] = _SETTINGS_DEFAULTS["exit_policy"]
    if not isinstance(settings["snapshot_min_minutes"], int) or settings["snapshot_min_minutes"] < 0:
        defaulted.add("settings.snapshot_min_minutes")
        settings["snapshot_min_minutes"] = _SETTINGS_DEFAULTS["snapshot_min_minutes"]
    return defaulted

# Applies one user-supplied setting, converting text to a number where the default is one. Raises ValueError for
# unknown keys and for values that wouldn't survive validation.
def apply_setting(settings, key, value):
    if key not in _SETTINGS_DEFAULTS:
        raise ValueError(f"Unknown setting '{key}'")
    if isinstance(_SETTINGS_DEFAULTS[key], int) and not isinstance(value, int):
        try:
            value = int(value)
        except (TypeError, ValueError):
            raise ValueError(f"Setting '{key}' needs a whole number") from None
    candidate = dict(settings)
    candidate[key] = value
    if _validate_settings(candidate):
        raise ValueError(f"Invalid value {value!r} for setting '{key}'")
    settings[key] = value
    return value

#endregion === Helpers and Paths ===

#region === Saving and Loading State ===

# Loads the raw state dict from the given path, ensuring the schema is valid and handling default fallbacks. A
# missing file is a fresh start. A file that exists but can't be read or parsed raises PersistenceFailure.
def load_state(path=None):
    path = Path(path or STATE_PATH)
    if not path.exists():
        log.info(f"No existing state file at '{path}', loading fresh state dict.")
        return build_default_state()

    try:
        with open(path, "r", encoding="utf-8") as f:
            state = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
        raise PersistenceFailure(f"Could not read state file '{path}': {e}", path=path) from e
    if not isinstance(state, dict):
        raise PersistenceFailure(f"State file '{path}' does not contain a JSON object", path=path)

    defaulted_values = set()

    # Validate the meta dict
    if "meta" not in state or not isinstance(state["meta"], dict):
        defaulted_values.add("meta")
        state["meta"] = {}
    if "schema_version" not in state["meta"] or not isinstance(state["meta"]["schema_version"], int):
        defaulted_values.add("meta.schema_version")
        state["meta"]["schema_version"] = _SCHEMA_VERSION
    elif state["meta"]["schema_version"] > _SCHEMA_VERSION:
        raise PersistenceFailure(
            f"State file '{path}' has schema version {state['meta']['schema_version']}, newer than supported "
            f"version {_SCHEMA_VERSION}", path=path)

    # Validate the settings dict, fill in any necessary defaults
    if "settings" not in state or not isinstance(state["settings"], dict):
        defaulted_values.add("settings")
        state["settings"] = dict(_SETTINGS_DEFAULTS)
    else:
        defaulted_values |= _validate_settings(state["settings"])

    # Validate the record lists, default to empty if they're missing
    for key in ("projects", "tasks", "entries"):
        if key not in state or not isinstance(state[key], list):
            defaulted_values.add(key)
            state[key] = []

    # Log results
    if defaulted_values:
        log.warning(f"Loaded state dict from '{path}', but with missing values that were defaulted: {', '.join(sorted(defaulted_values))}")
    else:
        log.info(f"Successfully loaded state dict from '{path}'.")
    return state

# Write the given state to disk. Goes through a temp file and os.replace so a failed write never leaves half a file.
def save_state(state, path=None):
    path = Path(path or STATE_PATH)
    state["meta"]["saved_at"] = now_iso()
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(state, f, indent=2)
        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError) as e:
        try: tmp_path.unlink()
        except OSError: pass
        raise PersistenceFailure(f"Could not write state file '{path}': {e}", path=path) from e
    log.info(f"Successfully saved state to '{path}'")

# Moves an unreadable state file out of the way so the next save doesn't overwrite it. Returns the new path, or None
# if there was nothing to move or the move failed.
def quarantine_state(path=None):
    path = Path(path or STATE_PATH)
    if not path.exists():
        return None
    target = path.with_name(f"{path.stem}.corrupt-{datetime.now():%Y%m%d_%H%M%S}{path.suffix}")
    try:
        os.replace(path, target)
    except OSError:
        log.error(f"Could not move unreadable state file '{path}' aside", exc_info=True)
        return None
    log.warning(f"Moved unreadable state file to '{target}'")
    return target

#endregion === Saving and Loading State ===

#region === Persistence collaborator ===

# The session's view of the state file: projects, tasks and entries in, the same out. Settings ride along in the same
# file and are kept as loaded.
class JsonStateStore:

    def __init__(self, path=None, snapshot_dir=None):
        self.path = Path(path or STATE_PATH)
        self.snapshot_dir = Path(snapshot_dir or SNAPSHOT_DIR)
        self.settings = dict(_SETTINGS_DEFAULTS)
        self._loaded = None

    def _state(self):
        if self._loaded is None:
            self._loaded = load_state(self.path)
            self.settings = self._loaded["settings"]
        return self._loaded

    def load_all(self):
        self._loaded = None
        state = self._state()
        try:
            projects = [Project.from_dict(p) for p in state["projects"]]
            tasks = [Task.from_dict(t) for t in state["tasks"]]
            entries = [TimeEntry.from_dict(e) for e in state["entries"]]
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceFailure(f"State file '{self.path}' has a malformed record: {e}", path=self.path) from e

        ids = [e.id for e in entries]
        if len(ids) != len(set(ids)):
            raise PersistenceFailure(f"State file '{self.path}' has duplicate entry ids", path=self.path)
        for entry in entries:
            if entry.end is not None and entry.end < entry.start:
                raise PersistenceFailure(f"Entry {entry.id} in '{self.path}' ends before it starts", path=self.path)

        log.debug(f"Loaded {len(projects)} project(s), {len(tasks)} task(s), {len(entries)} entries")
        return projects, tasks, entries

    # Builds the full state dict for the given records, writes it and returns it (for snapshots).
    def save_all(self, projects, tasks, entries):
        state = {
            "meta": {
                "schema_version": _SCHEMA_VERSION,
                "saved_at": now_iso(),
            },
            "settings": dict(self.settings),
            "projects": [p.to_dict() for p in projects],
            "tasks": [t.to_dict() for t in tasks],
            "entries": [e.to_dict() for e in entries],
        }
        save_state(state, self.path)
        return state

    def quarantine(self):
        self._loaded = None
        return quarantine_state(self.path)

#endregion === Persistence collaborator ===
