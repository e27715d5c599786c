"""Projects, tasks and time entries. Plain data, no behaviour beyond durations and (de)serialization."""

from dataclasses import dataclass
from datetime import datetime, timedelta


class _Unknown:
    """Sentinel for a project/task reference that no longer resolves."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "UNKNOWN"

    def __bool__(self):
        return False


UNKNOWN = _Unknown()


@dataclass
class Project:
    id: int
    name: str
    description: str = ""

    def to_dict(self):
        return {"id": self.id, "name": self.name, "description": self.description}

    @classmethod
    def from_dict(cls, data):
        return cls(id=int(data["id"]), name=str(data["name"]), description=str(data.get("description", "")))


@dataclass
class Task:
    id: int
    project_id: int
    name: str
    description: str = ""

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=int(data["id"]),
            project_id=int(data["project_id"]),
            name=str(data["name"]),
            description=str(data.get("description", "")),
        )


@dataclass
class TimeEntry:
    """One tracked interval. ``end`` is None while the timer for it is running.

    ``id`` is None until the entry has been appended to an ``EntryStore``.
    """

    description: str
    start: datetime
    end: datetime | None = None
    project_id: int | None = None
    task_id: int | None = None
    manual: bool = False
    id: int | None = None

    @property
    def is_running(self):
        return self.end is None

    def duration(self, now=None):
        if self.end is not None:
            return self.end - self.start
        if now is None:
            raise ValueError(f"Entry {self.id} is still running, a current time is needed for its duration")
        return max(now - self.start, timedelta(0))

    def to_dict(self):
        return {
            "id": self.id,
            "description": self.description,
            "start": self.start.isoformat(),
            "end": self.end.isoformat() if self.end else None,
            "project_id": self.project_id,
            "task_id": self.task_id,
            "manual": self.manual,
        }

    @classmethod
    def from_dict(cls, data):
        start = datetime.fromisoformat(data["start"])
        end = datetime.fromisoformat(data["end"]) if data.get("end") else None
        if start.tzinfo is None:
            start = start.astimezone()
        if end is not None and end.tzinfo is None:
            end = end.astimezone()
        return cls(
            id=int(data["id"]),
            description=str(data.get("description", "")),
            start=start,
            end=end,
            project_id=_optional_int(data.get("project_id")),
            task_id=_optional_int(data.get("task_id")),
            manual=bool(data.get("manual", False)),
        )


def _optional_int(value):
    return None if value is None else int(value)
