"""Tests for the state file, the persistence collaborator and snapshots.

Covers: tt.core.config, tt.core.snapshot, tt.core.models serialization
"""

import json
import os
import shutil
import tempfile
import time
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

os.environ.setdefault("TT_HOME", tempfile.mkdtemp(prefix="tt-tests-"))

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


# ──────────────────────────────────────────────────────────────────────────
# config.py tests
# ──────────────────────────────────────────────────────────────────────────

class TestConfig(unittest.TestCase):
    """Tests for raw state loading and saving in config.py."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.state_path = Path(self.tmpdir) / "state.json"

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_fresh_start_returns_default_state(self):
        """No existing file → fresh default state."""
        from tt.core.config import load_state
        state = load_state(self.state_path)
        self.assertEqual(state["meta"]["schema_version"], 1)
        self.assertEqual(state["entries"], [])
        self.assertEqual(state["settings"]["exit_policy"], "auto_stop")
        self.assertEqual(state["settings"]["week_start"], 0)

    def test_save_and_load_roundtrip(self):
        from tt.core.config import load_state, save_state
        state = load_state(self.state_path)
        state["settings"]["user_name"] = "Sam"
        state["projects"] = [{"id": 1, "name": "ACME", "description": ""}]
        save_state(state, self.state_path)

        loaded = load_state(self.state_path)
        self.assertEqual(loaded["settings"]["user_name"], "Sam")
        self.assertEqual(loaded["projects"][0]["name"], "ACME")

    def test_save_updates_saved_at(self):
        """save_state() always refreshes meta.saved_at."""
        from tt.core.config import load_state, save_state
        state = load_state(self.state_path)
        old_ts = state["meta"]["saved_at"]
        time.sleep(0.05)
        save_state(state, self.state_path)
        self.assertNotEqual(old_ts, state["meta"]["saved_at"])

    def test_save_leaves_no_temp_file(self):
        from tt.core.config import build_default_state, save_state
        save_state(build_default_state(), self.state_path)
        self.assertEqual(os.listdir(self.tmpdir), ["state.json"])

    def test_load_fills_missing_settings_defaults(self):
        """If the file is missing some settings keys, they get filled."""
        from tt.core.config import load_state
        minimal = {
            "meta": {"schema_version": 1, "saved_at": "x"},
            "settings": {"user_name": "Sam", "week_start": 9},
            "entries": [],
        }
        with open(self.state_path, "w") as f:
            json.dump(minimal, f)

        with self.assertLogs("timetracker", level="WARNING"):
            loaded = load_state(self.state_path)
        self.assertEqual(loaded["settings"]["user_name"], "Sam")
        self.assertEqual(loaded["settings"]["week_start"], 0)
        self.assertEqual(loaded["settings"]["snapshot_min_minutes"], 5)
        self.assertEqual(loaded["projects"], [])
        self.assertEqual(loaded["tasks"], [])

    def test_corrupt_file_raises_persistence_failure(self):
        from tt.core.config import load_state
        from tt.core.errors import PersistenceFailure
        with open(self.state_path, "w") as f:
            f.write("{not json")
        with self.assertRaises(PersistenceFailure):
            load_state(self.state_path)

    def test_non_object_file_raises_persistence_failure(self):
        from tt.core.config import load_state
        from tt.core.errors import PersistenceFailure
        with open(self.state_path, "w") as f:
            json.dump([1, 2, 3], f)
        with self.assertRaises(PersistenceFailure):
            load_state(self.state_path)

    def test_newer_schema_rejected(self):
        from tt.core.config import load_state
        from tt.core.errors import PersistenceFailure
        with open(self.state_path, "w") as f:
            json.dump({"meta": {"schema_version": 99}}, f)
        with self.assertRaises(PersistenceFailure):
            load_state(self.state_path)

    def test_save_failure_raises_persistence_failure(self):
        from tt.core.config import build_default_state, save_state
        from tt.core.errors import PersistenceFailure
        with patch("tt.core.config.os.replace", side_effect=OSError("disk full")):
            with self.assertRaises(PersistenceFailure):
                save_state(build_default_state(), self.state_path)
        self.assertFalse(self.state_path.exists())

    def test_quarantine_moves_file_aside(self):
        from tt.core.config import quarantine_state
        with open(self.state_path, "w") as f:
            f.write("garbage")
        moved = quarantine_state(self.state_path)
        self.assertFalse(self.state_path.exists())
        self.assertTrue(moved.exists())
        self.assertIn("corrupt", moved.name)

    def test_apply_setting_converts_and_validates(self):
        from tt.core.config import apply_setting, default_settings
        settings = default_settings()
        self.assertEqual(apply_setting(settings, "week_start", "6"), 6)
        self.assertEqual(settings["week_start"], 6)
        apply_setting(settings, "exit_policy", "require_stop")
        with self.assertRaises(ValueError):
            apply_setting(settings, "exit_policy", "whenever")
        with self.assertRaises(ValueError):
            apply_setting(settings, "week_start", "7")
        with self.assertRaises(ValueError):
            apply_setting(settings, "colour", "blue")
        self.assertEqual(settings["exit_policy"], "require_stop")


class TestJsonStateStore(unittest.TestCase):
    """Tests for the load_all/save_all contract."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.state_path = Path(self.tmpdir) / "current" / "state.json"
        self.snapshot_dir = Path(self.tmpdir) / "snapshots"

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def _store(self):
        from tt.core.config import JsonStateStore
        return JsonStateStore(self.state_path, self.snapshot_dir)

    def _records(self):
        from tt.core.models import Project, Task, TimeEntry
        projects = [Project(id=1, name="ACME", description="client"), Project(id=3, name="Internal")]
        tasks = [Task(id=2, project_id=1, name="Calls"), Task(id=5, project_id=3, name="Admin", description="x")]
        entries = [
            TimeEntry(id=4, description="call", start=T0, end=T0 + timedelta(minutes=30), project_id=1, task_id=2),
            TimeEntry(id=1, description="", start=T0 + timedelta(hours=1), end=T0 + timedelta(hours=1)),
            TimeEntry(id=9, description="manual", start=T0, end=T0 + timedelta(hours=2), project_id=7, manual=True),
            TimeEntry(id=10, description="running", start=T0 + timedelta(hours=3)),
        ]
        return projects, tasks, entries

    def test_missing_file_loads_empty(self):
        self.assertEqual(self._store().load_all(), ([], [], []))

    def test_save_then_load_reproduces_records(self):
        """Same ids, same fields, same order."""
        projects, tasks, entries = self._records()
        self._store().save_all(projects, tasks, entries)
        loaded = self._store().load_all()
        self.assertEqual(loaded, (projects, tasks, entries))

    def test_settings_ride_along(self):
        store = self._store()
        store.settings["user_email"] = "sam@example.com"
        store.save_all([], [], [])
        reopened = self._store()
        reopened.load_all()
        self.assertEqual(reopened.settings["user_email"], "sam@example.com")

    def test_malformed_record_raises(self):
        from tt.core.errors import PersistenceFailure
        self.state_path.parent.mkdir(parents=True)
        with open(self.state_path, "w") as f:
            json.dump({"meta": {"schema_version": 1}, "entries": [{"id": "x", "start": "nope"}]}, f)
        with self.assertRaises(PersistenceFailure):
            self._store().load_all()

    def test_entry_ending_before_start_raises(self):
        from tt.core.errors import PersistenceFailure
        from tt.core.models import TimeEntry
        bad = TimeEntry(id=1, description="x", start=T0, end=T0 - timedelta(minutes=1))
        self._store().save_all([], [], [bad])
        with self.assertRaises(PersistenceFailure):
            self._store().load_all()

    def test_duplicate_entry_ids_raise(self):
        from tt.core.errors import PersistenceFailure
        from tt.core.models import TimeEntry
        dupes = [TimeEntry(id=1, description="a", start=T0, end=T0), TimeEntry(id=1, description="b", start=T0, end=T0)]
        self._store().save_all([], [], dupes)
        with self.assertRaises(PersistenceFailure):
            self._store().load_all()

    def test_settings_default_when_file_unreadable(self):
        self.state_path.parent.mkdir(parents=True)
        with open(self.state_path, "w") as f:
            f.write("][")
        from tt.core.errors import PersistenceFailure
        store = self._store()
        with self.assertRaises(PersistenceFailure):
            store.load_all()
        self.assertEqual(store.settings["exit_policy"], "auto_stop")


# ──────────────────────────────────────────────────────────────────────────
# snapshot.py tests
# ──────────────────────────────────────────────────────────────────────────

class TestSnapshot(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def _sample_state(self):
        return {
            "meta": {"schema_version": 1, "saved_at": "2026-02-12T14:00:00"},
            "settings": {"week_start": 0},
            "projects": [{"id": 1, "name": "A", "description": ""}],
            "tasks": [],
            "entries": [],
        }

    def test_create_snapshot_content(self):
        from tt.core.snapshot import create_snapshot
        path = create_snapshot(self._sample_state(), self.tmpdir, "app_exit", "high")
        with open(path) as f:
            snap = json.load(f)
        self.assertEqual(snap["meta"]["snapshot_reason"], "app_exit")
        self.assertEqual(snap["meta"]["snapshot_priority"], "high")
        self.assertEqual(snap["projects"][0]["name"], "A")

    def test_create_snapshot_does_not_mutate_original(self):
        from tt.core.snapshot import create_snapshot
        state = self._sample_state()
        create_snapshot(state, self.tmpdir, "test")
        self.assertNotIn("snapshot_reason", state["meta"])

    def test_snapshot_filename_format(self):
        from tt.core.snapshot import create_snapshot
        path = create_snapshot(self._sample_state(), self.tmpdir, "test")
        self.assertTrue(path.name.startswith("state_"))
        self.assertTrue(path.name.endswith(".json"))

    def test_parse_snapshot_time(self):
        from tt.core.snapshot import _parse_snapshot_time
        dt = _parse_snapshot_time("state_20260212_143011_123456.json")
        self.assertEqual((dt.year, dt.month, dt.day, dt.hour, dt.minute, dt.second), (2026, 2, 12, 14, 30, 11))

    def test_parse_snapshot_time_bad_name(self):
        from tt.core.snapshot import _parse_snapshot_time
        self.assertIsNone(_parse_snapshot_time("garbage.json"))
        self.assertIsNone(_parse_snapshot_time("state_notadate.json"))

    def test_prune_nonexistent_dir_safe(self):
        from tt.core.snapshot import prune_snapshots
        prune_snapshots(os.path.join(self.tmpdir, "nope"))

    def test_snapshot_tiered_retention(self):
        """Snapshots across five days get thinned to one per tier plus the newest."""
        from tt.core.snapshot import prune_snapshots, TIERS
        now = datetime.now()
        offsets_minutes = [0, 1, 2, 3, 4, 5, 8, 10, 15, 20, 30, 60, 120, 360, 720, 1440, 2880, 4320, 5760]
        for offset in offsets_minutes:
            ts = now - timedelta(minutes=offset)
            fname = f"state_{ts.strftime('%Y%m%d_%H%M%S_%f')}.json"
            with open(os.path.join(self.tmpdir, fname), "w") as f:
                json.dump({"meta": {}}, f)
        other = os.path.join(self.tmpdir, "notes.txt")
        with open(other, "w") as f:
            f.write("hello")

        prune_snapshots(self.tmpdir)

        remaining = [f for f in os.listdir(self.tmpdir) if f.startswith("state_")]
        self.assertLessEqual(len(remaining), len(TIERS) + 1)
        self.assertGreaterEqual(len(remaining), 2)
        self.assertTrue(os.path.exists(other))

    def test_throttle(self):
        from tt.core.snapshot import SnapshotThrottle
        throttle = SnapshotThrottle(min_minutes=5)
        self.assertTrue(throttle.should_snapshot("low"))
        throttle.mark_done()
        self.assertFalse(throttle.should_snapshot("low"))
        self.assertTrue(throttle.should_snapshot("high"))


# ──────────────────────────────────────────────────────────────────────────
# models / misc helpers
# ──────────────────────────────────────────────────────────────────────────

class TestModelsAndHelpers(unittest.TestCase):

    def test_naive_timestamps_become_aware(self):
        from tt.core.models import TimeEntry
        entry = TimeEntry.from_dict({"id": 1, "description": "x", "start": "2026-03-02T09:00:00", "end": None})
        self.assertIsNotNone(entry.start.tzinfo)
        self.assertTrue(entry.is_running)

    def test_running_duration_needs_now(self):
        from tt.core.models import TimeEntry
        entry = TimeEntry(id=1, description="x", start=T0)
        with self.assertRaises(ValueError):
            entry.duration()
        self.assertEqual(entry.duration(T0 + timedelta(minutes=2)), timedelta(minutes=2))

    def test_format_duration(self):
        from tt.util.misc import format_duration
        self.assertEqual(format_duration(timedelta(minutes=45)), "00:45:00")
        self.assertEqual(format_duration(timedelta(hours=26, seconds=7)), "26:00:07")
        self.assertEqual(format_duration(-5), "00:00:00")

    def test_parse_duration(self):
        from tt.util.misc import parse_duration
        self.assertEqual(parse_duration("1h30m"), timedelta(hours=1, minutes=30))
        self.assertEqual(parse_duration("45m"), timedelta(minutes=45))
        self.assertEqual(parse_duration("01:15"), timedelta(hours=1, minutes=15))
        self.assertEqual(parse_duration("0:00:20"), timedelta(seconds=20))
        self.assertEqual(parse_duration("90"), timedelta(minutes=90))
        for bad in ("", "abc", "1x", "1:2:3:4", "h"):
            with self.assertRaises(ValueError):
                parse_duration(bad)


if __name__ == "__main__":
    unittest.main()
